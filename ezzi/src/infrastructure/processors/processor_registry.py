"""
Registry of app-mode processors.

The registry is immutable: adding a mode produces a new registry. Lookups
for an unregistered mode fall back to the first registered processor.
"""

import logging
from types import MappingProxyType
from typing import Iterable, Mapping, Tuple

from .base_processor import AppModeProcessor
from .leetcode_processor import LeetCodeProcessor
from .live_interview_processor import LiveInterviewProcessor
from ..ai.api_client import SolvingApiClient
from ...domain.models.app_state import AppMode

logger = logging.getLogger("ezzi.processor_registry")


class ProcessorRegistry:

    def __init__(self, processors: Iterable[Tuple[AppMode, AppModeProcessor]]):
        table = dict(processors)
        if not table:
            raise ValueError("ProcessorRegistry needs at least one processor")
        self._processors: Mapping[AppMode, AppModeProcessor] = MappingProxyType(table)
        self._default_mode = next(iter(table))

    @property
    def default_mode(self) -> AppMode:
        return self._default_mode

    @property
    def modes(self) -> Tuple[AppMode, ...]:
        return tuple(self._processors)

    def get(self, mode) -> AppModeProcessor:
        processor = self._processors.get(mode)
        if processor is None:
            logger.warning(f"Unknown app mode {mode!r}, falling back to {self._default_mode.value}")
            processor = self._processors[self._default_mode]
        return processor

    def with_processor(self, mode: AppMode, processor: AppModeProcessor) -> "ProcessorRegistry":
        """Return a new registry with ``processor`` registered for ``mode``."""
        items = dict(self._processors)
        items[mode] = processor
        return ProcessorRegistry(items.items())

    def __contains__(self, mode) -> bool:
        return mode in self._processors


def create_default_registry(api_client: SolvingApiClient) -> ProcessorRegistry:
    """Built-in processors; live interview is registered first and is the fallback."""
    return ProcessorRegistry([
        (AppMode.LIVE_INTERVIEW, LiveInterviewProcessor(api_client)),
        (AppMode.LEETCODE_SOLVER, LeetCodeProcessor(api_client)),
    ])
