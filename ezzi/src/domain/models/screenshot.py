"""Screenshot references and queue names."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
import itertools

_sequence = itertools.count()


class QueueName(Enum):
    """The two screenshot queues."""
    PRIMARY = "primary"  # problem statement, used while in the queue view
    EXTRA = "extra"      # follow-ups for debug, used while in the solutions view


@dataclass(frozen=True)
class ScreenshotRef:
    """
    A captured screenshot on disk.

    Identity is the file path; ``sequence`` only records capture order and
    does not take part in equality.
    """
    path: Path
    sequence: int = field(default_factory=lambda: next(_sequence), compare=False)

    @property
    def name(self) -> str:
        return self.path.name

    def __str__(self) -> str:
        return str(self.path)
