"""
Модели запусков заданий для диспетчера.
"""

from typing import Any, Dict, List
from dataclasses import dataclass, field


@dataclass
class ClaimedRun:
    """Запуск, захваченный диспетчером из хранилища."""
    run_id: str
    worker_type: str
    config: Dict[str, Any] = field(default_factory=dict)
    job_name: str = ""


@dataclass
class OfflineSyncResult:
    """Итог догоняющей синхронизации расписаний, пропущенных офлайн."""
    schedules_processed: int = 0
    runs_created: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
