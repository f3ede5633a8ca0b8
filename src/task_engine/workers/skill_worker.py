"""
SkillWorker - вызов именованного навыка через промпт.
"""

import json
from pathlib import Path
from typing import Any, Optional

from .ai_worker import PromptWorker
from .base import elapsed_ms
from ..models.worker import JobConfig, WorkerResult
from ..utils.cancellation import CancellationToken


def build_skill_prompt(skill_name: str, action: Optional[str] = None, params: Any = None) -> str:
    """
    Построение инструкции для вызова навыка.

    Args:
        skill_name: Имя навыка
        action: Действие навыка
        params: Параметры - строка или структура (сериализуется в JSON с отступами)

    Returns:
        Текст промпта
    """
    prompt = f'Use the "{skill_name}" skill'

    if action:
        prompt += f' to perform the "{action}" action'

    if params:
        params_text = params if isinstance(params, str) else json.dumps(params, indent=2, ensure_ascii=False)
        prompt += f"\n\nParameters:\n{params_text}"

    return prompt


class SkillWorker(PromptWorker):
    """Вызов навыка из JobConfig.skill_name тем же путем, что и AIWorker."""

    worker_type = "skill"

    def skills_cwd(self) -> Optional[str]:
        """Директория навыков, если она существует."""
        skills_dir = Path(self.config.skills_dir).expanduser()
        return str(skills_dir) if skills_dir.is_dir() else None

    def _execute(self, job: JobConfig, token: Optional[CancellationToken], start: float) -> WorkerResult:
        if not job.skill_name:
            return WorkerResult.failure("No skillName specified in job config", elapsed_ms(start))

        return self.run_prompt(
            build_skill_prompt(job.skill_name, job.action, job.params),
            model=job.model,
            timeout_ms=job.timeout if job.timeout is not None else self.config.ai_timeout_ms,
            token=token,
            start=start,
            cwd=self.skills_cwd(),
        )
