"""
Статистика очереди задач.
"""

from dataclasses import dataclass, asdict
from typing import Dict


@dataclass
class QueueStats:
    """
    Счетчики очереди.

    pending + running - задачи, еще не получившие результат;
    completed + cancelled + failed - все завершенные задачи.
    """
    
    pending: int = 0
    running: int = 0
    completed: int = 0
    cancelled: int = 0
    failed: int = 0
    
    @property
    def settled(self) -> int:
        return self.completed + self.cancelled + self.failed
    
    @property
    def unsettled(self) -> int:
        return self.pending + self.running
    
    def copy(self) -> 'QueueStats':
        """Снимок счетчиков."""
        return QueueStats(**asdict(self))
    
    def to_dict(self) -> Dict[str, int]:
        """Преобразование в словарь."""
        return asdict(self)
