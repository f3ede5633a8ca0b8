"""
Исполнители промптов - внешние клиенты LLM для AIWorker и SkillWorker.
"""

import shutil
import sys
from abc import ABC, abstractmethod
from typing import List, Optional

from .base import CANCELLED_MESSAGE, timeout_message
from ..core.process_runner import TERMINATION_CANCELLED, run_process
from ..exceptions import PromptCancelledError, PromptExecutionError, PromptTimeoutError
from ..utils.cancellation import CancellationToken
from ..utils.config import WorkerConfig
from ..utils.logger import get_logger


logger = get_logger(__name__)


class PromptRunner(ABC):
    """
    Внешний клиент выполнения промптов.

    Реализация сама отвечает за аутентификацию, повторы и потоковый
    вывод; она обязана соблюдать таймаут и токен отмены.
    """

    # run() уже ограничивает размер ответа и помечает усечение
    output_capped = False

    @abstractmethod
    def run(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        timeout_ms: int,
        token: Optional[CancellationToken] = None,
        cwd: Optional[str] = None
    ) -> str:
        """
        Выполнение промпта.

        Returns:
            Текст ответа модели

        Raises:
            PromptCancelledError: Отмена вызывающей стороной
            PromptTimeoutError: Превышен таймаут
            PromptExecutionError: Любой другой сбой
        """


class CopilotCliRunner(PromptRunner):
    """Выполнение промптов через GitHub Copilot CLI в неинтерактивном режиме."""

    output_capped = True

    def __init__(self, config: Optional[WorkerConfig] = None):
        self.config = config or WorkerConfig()

    def build_args(self, prompt: str, model: Optional[str]) -> List[str]:
        """argv для `copilot --prompt ...`."""
        executable = self.config.copilot_command
        if sys.platform == "win32":
            # npm ставит copilot как .cmd-обертку, Popen без shell ее не находит
            executable = shutil.which(executable) or executable

        args = [executable, "--prompt", prompt]
        if model:
            args.extend(["--model", model])
        args.extend(["--allow-all", "--silent"])
        return args

    def run(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        timeout_ms: int,
        token: Optional[CancellationToken] = None,
        cwd: Optional[str] = None
    ) -> str:
        logger.info(f"Running Copilot CLI prompt (model={model or 'default'}, timeout {timeout_ms}ms)")

        outcome = run_process(
            self.build_args(prompt, model),
            cwd=cwd,
            timeout_ms=timeout_ms,
            token=token,
            output_cap=self.config.ai_output_cap_bytes,
            grace_period_ms=self.config.kill_grace_period_ms,
        )

        if outcome.spawn_error is not None:
            raise PromptExecutionError(
                f"Spawn error: {outcome.spawn_error}. "
                f"Is Copilot CLI installed? (npm i -g @github/copilot)"
            )

        if outcome.killed:
            if outcome.termination == TERMINATION_CANCELLED:
                raise PromptCancelledError(CANCELLED_MESSAGE, exit_code=outcome.exit_code)
            raise PromptTimeoutError(timeout_message(timeout_ms), exit_code=outcome.exit_code)

        if outcome.exit_code != 0:
            raise PromptExecutionError(
                outcome.stderr or f"Copilot CLI exited with code {outcome.exit_code}",
                exit_code=outcome.exit_code,
            )

        return outcome.stdout
