"""
AIWorker - выполнение промптов LLM через внешний клиент.
"""

from typing import Optional

from .base import Worker, CANCELLED_MESSAGE, elapsed_ms
from .prompt_runner import CopilotCliRunner, PromptRunner
from ..core.process_runner import truncate_text
from ..exceptions import PromptExecutionError
from ..models.worker import JobConfig, WorkerResult
from ..utils.cancellation import CancellationToken
from ..utils.config import WorkerConfig
from ..utils.logger import get_logger


logger = get_logger(__name__)


class PromptWorker(Worker):
    """Общий путь выполнения промпта для AIWorker и SkillWorker."""

    def __init__(self, config: Optional[WorkerConfig] = None, runner: Optional[PromptRunner] = None):
        super().__init__(config)
        self.runner = runner or CopilotCliRunner(self.config)

    def run_prompt(
        self,
        prompt: str,
        *,
        model: Optional[str],
        timeout_ms: int,
        token: Optional[CancellationToken],
        start: float,
        cwd: Optional[str] = None
    ) -> WorkerResult:
        """
        Передача промпта исполнителю и преобразование ответа в WorkerResult.

        Исключения исполнителя становятся неуспешным результатом.
        """
        if token is not None and token.is_cancelled:
            return WorkerResult.failure(CANCELLED_MESSAGE, elapsed_ms(start))

        try:
            text = self.runner.run(prompt, model=model, timeout_ms=timeout_ms, token=token, cwd=cwd)
        except PromptExecutionError as e:
            logger.warning(f"{type(self).__name__} prompt failed: {e}")
            return WorkerResult.failure(str(e) or type(e).__name__, elapsed_ms(start), exit_code=e.exit_code)
        except Exception as e:
            logger.warning(f"{type(self).__name__} prompt runner error: {e}")
            return WorkerResult.failure(str(e) or type(e).__name__, elapsed_ms(start))

        if text and not self.runner.output_capped:
            text = truncate_text(text, self.config.ai_output_cap_bytes)

        return WorkerResult(success=True, duration=elapsed_ms(start), output=(text or "").strip() or None, exit_code=0)


class AIWorker(PromptWorker):
    """Выполнение промпта из JobConfig.prompt."""

    worker_type = "ai"

    def _execute(self, job: JobConfig, token: Optional[CancellationToken], start: float) -> WorkerResult:
        if not job.prompt:
            return WorkerResult.failure("No prompt specified in job config", elapsed_ms(start))

        return self.run_prompt(
            job.prompt,
            model=job.model or self.config.default_model,
            timeout_ms=job.timeout if job.timeout is not None else self.config.ai_timeout_ms,
            token=token,
            start=start,
        )
