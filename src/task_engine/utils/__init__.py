"""
Утилиты движка задач.
"""

from .config import Config, WorkerConfig, DispatcherConfig, load_config, save_config, load_config_from_env
from .logger import get_logger, setup_logging
from .cancellation import CancellationToken

__all__ = [
    "Config",
    "WorkerConfig",
    "DispatcherConfig",
    "load_config",
    "save_config",
    "load_config_from_env",
    "get_logger",
    "setup_logging",
    "CancellationToken"
]
