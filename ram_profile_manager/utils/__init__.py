"""Utility modules for RAM Profile Manager.

This package provides:
- hashing: Fast file and directory hashing utilities
- logging: Root logger setup with JSON/text output support
- platform: Platform detection and privilege checks
- process: External command runner
- progress: Monotonic progress accounting
"""

from ram_profile_manager.utils.hashing import fast_hash_file, hash_directory, compare_hashes
from ram_profile_manager.utils.logging import configure_root_logger
from ram_profile_manager.utils.platform import detect_platform, is_root
from ram_profile_manager.utils.process import CommandRunner, CommandResult
from ram_profile_manager.utils.progress import ProgressTracker, ProgressCallback

__all__ = [
    "fast_hash_file",
    "hash_directory",
    "compare_hashes",
    "configure_root_logger",
    "detect_platform",
    "is_root",
    "CommandRunner",
    "CommandResult",
    "ProgressTracker",
    "ProgressCallback",
]
