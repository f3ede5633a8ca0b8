"""
ExecWorker - выполнение команд оболочки (PowerShell, bash, sh, cmd).
"""

import sys
from typing import List, Optional, Tuple

from .base import Worker, CANCELLED_MESSAGE, elapsed_ms, timeout_message
from ..core.process_runner import TERMINATION_CANCELLED, run_process
from ..models.worker import JobConfig, ShellType, WorkerResult
from ..utils.cancellation import CancellationToken
from ..utils.logger import get_logger


logger = get_logger(__name__)


_POWERSHELL_ARGS = ["-NoProfile", "-NonInteractive", "-Command"]
_POWERSHELL_UTF8_PREFIX = "[Console]::OutputEncoding = [System.Text.Encoding]::UTF8; "

_SHELL_INVOCATIONS = {
    ShellType.PWSH: ("pwsh", _POWERSHELL_ARGS),
    ShellType.POWERSHELL: ("pwsh", _POWERSHELL_ARGS),
    ShellType.POWERSHELL5: ("powershell.exe", _POWERSHELL_ARGS),
    ShellType.BASH: ("bash", ["-c"]),
    ShellType.SH: ("sh", ["-c"]),
    ShellType.CMD: ("cmd.exe", ["/c"]),
}


def default_shell() -> ShellType:
    """Оболочка по умолчанию: PowerShell 7 на Windows (UTF-8 консоль), bash в остальных системах."""
    return ShellType.PWSH if sys.platform == "win32" else ShellType.BASH


def build_command(command: str, shell: Optional[str]) -> Tuple[ShellType, List[str]]:
    """
    Построение argv для запуска команды в оболочке.

    Args:
        command: Текст команды
        shell: Имя оболочки; неизвестное или пустое - оболочка по умолчанию

    Returns:
        Выбранная оболочка и argv
    """
    shell_type = ShellType.parse(shell)
    if shell_type is None:
        if shell:
            logger.debug(f"Unknown shell {shell!r}, falling back to {default_shell().value}")
        shell_type = default_shell()

    executable, args = _SHELL_INVOCATIONS[shell_type]
    if shell_type.is_powershell:
        command = _POWERSHELL_UTF8_PREFIX + command

    return shell_type, [executable, *args, command]


class ExecWorker(Worker):
    """Запуск команды в оболочке с таймаутом и двухступенчатым завершением."""

    worker_type = "exec"

    def _execute(self, job: JobConfig, token: Optional[CancellationToken], start: float) -> WorkerResult:
        if not job.command:
            return WorkerResult.failure("No command specified in job config", elapsed_ms(start))

        if token is not None and token.is_cancelled:
            return WorkerResult.failure(CANCELLED_MESSAGE, elapsed_ms(start))

        timeout_ms = job.timeout if job.timeout is not None else self.config.exec_timeout_ms
        shell_type, argv = build_command(job.command, job.shell)

        logger.info(f"Running command via {shell_type.value} (timeout {timeout_ms}ms)")

        outcome = run_process(
            argv,
            cwd=job.cwd,
            timeout_ms=timeout_ms,
            token=token,
            output_cap=self.config.exec_output_cap_bytes,
            grace_period_ms=self.config.kill_grace_period_ms,
        )

        if outcome.spawn_error is not None:
            return WorkerResult.failure(f"Spawn error: {outcome.spawn_error}", elapsed_ms(start))

        output = outcome.stdout or None

        if outcome.killed:
            if outcome.termination == TERMINATION_CANCELLED:
                error = CANCELLED_MESSAGE
            else:
                error = timeout_message(timeout_ms)
            return WorkerResult.failure(error, elapsed_ms(start), output=output, exit_code=outcome.exit_code)

        if outcome.exit_code == 0:
            return WorkerResult(success=True, duration=elapsed_ms(start), output=output, exit_code=0)

        return WorkerResult.failure(
            outcome.stderr or f"Process exited with code {outcome.exit_code}",
            elapsed_ms(start),
            output=output,
            exit_code=outcome.exit_code,
        )
