"""
Воркеры: выполнение команд оболочки, промптов LLM и навыков.
"""

from typing import Dict, Optional

from .base import Worker
from .exec_worker import ExecWorker
from .ai_worker import AIWorker, PromptWorker
from .skill_worker import SkillWorker, build_skill_prompt
from .prompt_runner import PromptRunner, CopilotCliRunner
from ..exceptions import UnknownWorkerError
from ..utils.config import WorkerConfig


def create_workers(
    config: Optional[WorkerConfig] = None,
    runner: Optional[PromptRunner] = None
) -> Dict[str, Worker]:
    """
    Создание набора воркеров по типам заданий.

    Args:
        config: Конфигурация воркеров
        runner: Исполнитель промптов для AI и skill воркеров

    Returns:
        Словарь тип задания -> воркер
    """
    config = config or WorkerConfig()
    runner = runner or CopilotCliRunner(config)
    return {
        ExecWorker.worker_type: ExecWorker(config),
        AIWorker.worker_type: AIWorker(config, runner),
        SkillWorker.worker_type: SkillWorker(config, runner),
    }


def get_worker(worker_type: str, workers: Optional[Dict[str, Worker]] = None) -> Worker:
    """
    Поиск воркера по типу задания.

    Raises:
        UnknownWorkerError: Тип не зарегистрирован
    """
    workers = workers if workers is not None else create_workers()
    try:
        return workers[worker_type]
    except KeyError:
        raise UnknownWorkerError(worker_type) from None


__all__ = [
    "Worker",
    "ExecWorker",
    "AIWorker",
    "PromptWorker",
    "SkillWorker",
    "build_skill_prompt",
    "PromptRunner",
    "CopilotCliRunner",
    "create_workers",
    "get_worker"
]
