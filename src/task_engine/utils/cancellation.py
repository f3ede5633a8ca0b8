"""
Токен кооперативной отмены.
"""

import threading
from typing import Callable, List, Optional

from .logger import get_logger
from ..exceptions import TaskCancelledError


logger = get_logger(__name__)


class CancellationToken:
    """
    Источник и сигнал отмены в одном объекте.

    Владелец (очередь или диспетчер) вызывает cancel(), функция задачи
    проверяет is_cancelled или подписывается через add_callback().
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self._reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> bool:
        """
        Запрос отмены.

        Args:
            reason: Причина отмены для диагностики

        Returns:
            True если токен перешел в отмененное состояние этим вызовом
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        for callback in callbacks:
            self._invoke(callback)
        return True

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Ожидание отмены. Возвращает True если токен отменен."""
        return self._event.wait(timeout)

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Подписка на отмену.

        Если токен уже отменен, callback вызывается сразу в текущем потоке.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return callback

        self._invoke(callback)
        return callback

    def remove_callback(self, callback: Callable[[], None]):
        """Отписка от отмены."""
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    def raise_if_cancelled(self):
        """Выбрасывает TaskCancelledError если отмена запрошена."""
        if self._event.is_set():
            raise TaskCancelledError(self._reason or "Task cancelled")

    @staticmethod
    def _invoke(callback: Callable[[], None]):
        try:
            callback()
        except Exception as e:
            logger.error(f"Error in cancellation callback {callback}: {e}")

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled})"
