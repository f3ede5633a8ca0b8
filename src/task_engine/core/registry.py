"""
Реестр именованных очередей задач.
"""

import threading
from dataclasses import replace
from typing import Dict, List, Optional

from .task_queue import TaskQueue, QueueConfig
from ..models.queue_stats import QueueStats
from ..utils.logger import get_logger


logger = get_logger(__name__)


class QueueRegistry:
    """
    Отображение имени очереди на экземпляр TaskQueue.

    Очередь создается при первом обращении; параметры первого вызова
    действуют все время жизни очереди, параметры последующих вызовов
    игнорируются.
    """

    def __init__(self, default_concurrency: int = 1):
        self.default_concurrency = default_concurrency
        self._queues: Dict[str, TaskQueue] = {}
        self._lock = threading.Lock()

    def get_queue(
        self,
        name: str,
        concurrency: Optional[int] = None,
        config: Optional[QueueConfig] = None
    ) -> TaskQueue:
        """
        Получение или создание очереди.

        Args:
            name: Имя очереди
            concurrency: Конкурентность (только при создании)
            config: Полная конфигурация (только при создании)

        Returns:
            Очередь задач
        """
        with self._lock:
            queue = self._queues.get(name)
            if queue is not None:
                if config is not None or (concurrency is not None and concurrency != queue.concurrency):
                    logger.debug(f"Queue '{name}' already exists, ignoring new options")
                return queue

            if config is None:
                config = QueueConfig(
                    concurrency=concurrency if concurrency is not None else self.default_concurrency
                )
            elif concurrency is not None:
                # Конфигурация вызывающей стороны не изменяется
                config = replace(config, concurrency=concurrency)

            queue = TaskQueue(name, config)
            self._queues[name] = queue
            logger.info(f"Created queue '{name}' with concurrency {config.concurrency}")
            return queue

    def has_queue(self, name: str) -> bool:
        """Проверка существования очереди."""
        with self._lock:
            return name in self._queues

    def get_queue_names(self) -> List[str]:
        """Имена всех очередей."""
        with self._lock:
            return list(self._queues)

    def cancel_all(self):
        """Отмена задач во всех очередях."""
        with self._lock:
            queues = list(self._queues.values())
        for queue in queues:
            queue.cancel_all()

    def get_all_stats(self) -> Dict[str, QueueStats]:
        """Статистика всех очередей."""
        with self._lock:
            queues = list(self._queues.items())
        return {name: queue.get_stats() for name, queue in queues}

    def __repr__(self) -> str:
        return f"QueueRegistry(queues={self.get_queue_names()})"


# Общий реестр процесса
default_registry = QueueRegistry()


def get_queue(name: str, concurrency: Optional[int] = None, config: Optional[QueueConfig] = None) -> TaskQueue:
    """Получение очереди из общего реестра процесса."""
    return default_registry.get_queue(name, concurrency=concurrency, config=config)
