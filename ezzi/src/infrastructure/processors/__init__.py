"""App-mode request processors."""

from .base_processor import AppModeProcessor, ProcessingParams
from .live_interview_processor import LiveInterviewProcessor
from .leetcode_processor import LeetCodeProcessor
from .processor_registry import ProcessorRegistry, create_default_registry

__all__ = [
    "AppModeProcessor",
    "ProcessingParams",
    "LiveInterviewProcessor",
    "LeetCodeProcessor",
    "ProcessorRegistry",
    "create_default_registry",
]
