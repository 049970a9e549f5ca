"""
Utility modules for documentation search.

This module provides utility functions including:
- Memory and device detection
- Markdown corpus loading
"""

from .hardware import available_memory_gb, get_gpu_info, select_device
from .parser import MarkdownCorpusLoader, load_corpus

__all__ = [
    "available_memory_gb",
    "get_gpu_info",
    "select_device",
    "MarkdownCorpusLoader",
    "load_corpus",
]
