"""
Система логирования для движка задач.
"""

import logging
import sys
import threading
from typing import Optional
from pathlib import Path


class TaskEngineFormatter(logging.Formatter):
    """Кастомный форматтер для логов движка задач."""
    
    def __init__(self):
        super().__init__(
            fmt='%(asctime)s | %(levelname)-8s | %(name)-28s | %(threadName)-20s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
    
    def format(self, record):
        # Добавляем информацию о потоке
        if not hasattr(record, 'threadName'):
            record.threadName = threading.current_thread().name
        
        return super().format(record)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    enable_console: bool = True,
    log_format: Optional[str] = None
):
    """
    Настройка системы логирования.
    
    Args:
        level: Уровень логирования
        log_file: Путь к файлу логов
        enable_console: Включить вывод в консоль (stderr)
        log_format: Кастомный формат логов
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    
    # Логгер пакета, корневой логгер приложения не трогаем
    package_logger = logging.getLogger("task_engine")
    package_logger.setLevel(numeric_level)
    package_logger.handlers.clear()
    
    if log_format:
        formatter = logging.Formatter(log_format)
    else:
        formatter = TaskEngineFormatter()
    
    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(formatter)
        package_logger.addHandler(console_handler)
    
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)
    
    logging.getLogger('psutil').setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Получение логгера для модуля.
    
    Args:
        name: Имя модуля
        
    Returns:
        Объект логгера
    """
    return logging.getLogger(name)
