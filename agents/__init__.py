"""Prompting and pattern agents for the coach."""

from .prompt_builder import MemoryPromptBuilder, SYSTEM_PROMPT, USER_PROMPT
from .pattern_tracker import PatternTracker

__all__ = [
    "MemoryPromptBuilder",
    "SYSTEM_PROMPT",
    "USER_PROMPT",
    "PatternTracker",
]
