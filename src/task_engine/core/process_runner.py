"""
Запуск внешнего процесса с таймаутом, отменой и ограничением вывода.
"""

import os
import subprocess
import sys
import threading
import time
from typing import Dict, IO, List, Optional
from dataclasses import dataclass

import psutil

from ..utils.cancellation import CancellationToken
from ..utils.logger import get_logger


logger = get_logger(__name__)


TERMINATION_TIMEOUT = "timeout"
TERMINATION_CANCELLED = "cancelled"

_READ_CHUNK_SIZE = 64 * 1024


class OutputBuffer:
    """Накопитель байтов потока с ограничением размера."""

    def __init__(self, cap: int):
        self.cap = cap
        self.total = 0
        self._chunks: List[bytes] = []
        self._kept = 0
        self._lock = threading.Lock()

    def append(self, chunk: bytes):
        with self._lock:
            self.total += len(chunk)
            room = self.cap - self._kept
            if room > 0:
                kept = chunk[:room]
                self._chunks.append(kept)
                self._kept += len(kept)

    @property
    def truncated(self) -> bool:
        return self.total > self.cap

    def text(self) -> str:
        """Декодированный вывод с пометкой об усечении."""
        with self._lock:
            data = b"".join(self._chunks)
        text = data.decode("utf-8", errors="replace").strip()
        if self.truncated:
            text += f"\n\n--- Output truncated ({self.total} bytes total) ---"
        return text


def truncate_text(text: str, cap: int) -> str:
    """
    Усечение готового текста по той же политике, что и потоки процессов.

    Args:
        text: Исходный текст
        cap: Максимальный размер в байтах UTF-8

    Returns:
        Текст без изменений (обрезанный по краям) или усеченный с пометкой
    """
    buffer = OutputBuffer(cap)
    buffer.append(text.encode("utf-8"))
    return buffer.text()


@dataclass
class ProcessOutcome:
    """Итог выполнения процесса."""
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    termination: Optional[str] = None  # TERMINATION_TIMEOUT / TERMINATION_CANCELLED
    spawn_error: Optional[str] = None

    @property
    def killed(self) -> bool:
        return self.termination is not None


class ProcessSupervisor:
    """
    Надзор за запущенным процессом: двухступенчатое завершение дерева процессов.

    Первый сигнал (таймаут или отмена) отправляет мягкое завершение,
    через grace_period - принудительное, если процесс еще жив.
    """

    def __init__(self, process: subprocess.Popen, grace_period_ms: int):
        self.process = process
        self.grace_period_ms = grace_period_ms
        self.termination: Optional[str] = None
        self._lock = threading.Lock()
        self._grace_timer: Optional[threading.Timer] = None
        self._targets: List[psutil.Process] = []

    def escalate(self, reason: str):
        """Начало эскалации. Повторные вызовы игнорируются."""
        with self._lock:
            if self.termination is not None:
                return
            self.termination = reason

        logger.info(f"Terminating process {self.process.pid} ({reason})")
        self.terminate()

        self._grace_timer = threading.Timer(self.grace_period_ms / 1000.0, self._force_kill)
        self._grace_timer.daemon = True
        self._grace_timer.start()

    def terminate(self):
        """Мягкое завершение (SIGTERM) процесса и его потомков."""
        self._targets = self._collect_tree()
        self._signal(self._targets, force=False)

    def kill(self):
        """Принудительное завершение (SIGKILL) выживших процессов дерева."""
        targets = self._targets or self._collect_tree()
        self._signal([proc for proc in targets if proc.is_running()], force=True)

    def _force_kill(self):
        # Потомки могут пережить родителя и держать открытыми его каналы вывода
        alive = [proc for proc in self._targets if proc.is_running()]
        if self.process.poll() is None or alive:
            logger.warning(f"Process {self.process.pid} still alive after "
                           f"{self.grace_period_ms}ms grace period, killing")
            self.kill()

    def _collect_tree(self) -> List[psutil.Process]:
        try:
            parent = psutil.Process(self.process.pid)
            return parent.children(recursive=True) + [parent]
        except psutil.NoSuchProcess:
            return []

    @staticmethod
    def _signal(targets: List[psutil.Process], force: bool):
        for proc in targets:
            try:
                if force:
                    proc.kill()
                else:
                    proc.terminate()
            except psutil.NoSuchProcess:
                pass
            except psutil.AccessDenied as e:
                logger.warning(f"Cannot signal process {proc.pid}: {e}")

    def cancel_timers(self):
        if self._grace_timer is not None:
            self._grace_timer.cancel()


def _pump(stream: IO[bytes], buffer: OutputBuffer):
    """Чтение потока до EOF."""
    try:
        for chunk in iter(lambda: stream.read1(_READ_CHUNK_SIZE), b""):
            buffer.append(chunk)
    except (OSError, ValueError) as e:
        logger.debug(f"Output stream closed: {e}")
    finally:
        stream.close()


def _normalize_exit_code(returncode: Optional[int]) -> int:
    # Завершение сигналом на POSIX дает отрицательный код
    if returncode is None or returncode < 0:
        return -1
    return returncode


def run_process(
    argv: List[str],
    *,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    timeout_ms: int,
    token: Optional[CancellationToken] = None,
    output_cap: int,
    grace_period_ms: int
) -> ProcessOutcome:
    """
    Запуск процесса и ожидание его завершения.

    Args:
        argv: Команда и аргументы (без интерпретации оболочкой)
        cwd: Рабочая директория
        env: Окружение, по умолчанию копия текущего
        timeout_ms: Таймаут в миллисекундах
        token: Токен отмены вызывающей стороны
        output_cap: Лимит накопления для каждого из потоков, байт
        grace_period_ms: Пауза между мягким и принудительным завершением

    Returns:
        Итог выполнения; исключения запуска возвращаются в spawn_error
    """
    creationflags = subprocess.CREATE_NO_WINDOW if sys.platform == "win32" else 0

    try:
        process = subprocess.Popen(
            argv,
            cwd=cwd or None,
            env=env if env is not None else dict(os.environ),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            creationflags=creationflags,
        )
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to spawn {argv[0]!r}: {e}")
        return ProcessOutcome(spawn_error=str(e))

    logger.debug(f"Spawned process {process.pid}: {argv[0]}")

    stdout_buffer = OutputBuffer(output_cap)
    stderr_buffer = OutputBuffer(output_cap)
    readers = [
        threading.Thread(target=_pump, args=(process.stdout, stdout_buffer), daemon=True),
        threading.Thread(target=_pump, args=(process.stderr, stderr_buffer), daemon=True),
    ]
    for reader in readers:
        reader.start()

    supervisor = ProcessSupervisor(process, grace_period_ms)

    timer = threading.Timer(timeout_ms / 1000.0, supervisor.escalate, args=(TERMINATION_TIMEOUT,))
    timer.daemon = True
    timer.start()

    on_cancel = None
    if token is not None:
        on_cancel = token.add_callback(lambda: supervisor.escalate(TERMINATION_CANCELLED))

    try:
        returncode = process.wait()
        # Фоновые потомки могут держать каналы открытыми после выхода родителя
        deadline = time.monotonic() + timeout_ms / 1000.0 + grace_period_ms / 1000.0
        for reader in readers:
            reader.join(max(0.0, deadline - time.monotonic()))
            if reader.is_alive():
                logger.warning(f"Output of process {process.pid} still open after exit, detaching reader")
    finally:
        timer.cancel()
        supervisor.cancel_timers()
        if token is not None:
            token.remove_callback(on_cancel)

    return ProcessOutcome(
        exit_code=_normalize_exit_code(returncode),
        stdout=stdout_buffer.text(),
        stderr=stderr_buffer.text(),
        termination=supervisor.termination,
    )
