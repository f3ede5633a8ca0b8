"""
Тесты запуска процессов: ограничение вывода и двухступенчатое завершение.
"""

import sys
import threading
import time
import pytest
from unittest.mock import Mock, patch

from task_engine.core.process_runner import (
    OutputBuffer,
    ProcessSupervisor,
    TERMINATION_CANCELLED,
    TERMINATION_TIMEOUT,
    run_process,
    truncate_text,
)
from task_engine.utils.cancellation import CancellationToken


posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals required")


class TestOutputBuffer:
    """Тесты ограничения вывода."""

    def test_under_cap_is_verbatim(self):
        """Тест: вывод в пределах лимита возвращается без изменений, кроме обрезки пробелов."""
        buffer = OutputBuffer(100)
        buffer.append(b"  hello\n")

        assert not buffer.truncated
        assert buffer.text() == "hello"

    def test_exactly_at_cap(self):
        """Тест: вывод ровно по лимиту не усекается."""
        buffer = OutputBuffer(5)
        buffer.append(b"abcde")

        assert buffer.text() == "abcde"

    def test_over_cap_across_chunks(self):
        """Тест усечения по нескольким порциям."""
        buffer = OutputBuffer(10)
        for _ in range(4):
            buffer.append(b"abcdef")

        assert buffer.truncated
        assert buffer.total == 24
        assert buffer.text() == "abcdefabcd\n\n--- Output truncated (24 bytes total) ---"

    def test_truncate_text(self):
        """Тест усечения готового текста."""
        assert truncate_text(" short ", 100) == "short"
        assert truncate_text("x" * 20, 10) == "x" * 10 + "\n\n--- Output truncated (20 bytes total) ---"


class TestProcessSupervisor:
    """Тесты эскалации завершения на подставных процессах."""

    def _supervisor(self, grace_period_ms=100):
        process = Mock(pid=12345)
        process.poll.return_value = None
        supervisor = ProcessSupervisor(process, grace_period_ms)

        child = Mock(pid=12346)
        parent = Mock(pid=12345)
        child.is_running.return_value = True
        parent.is_running.return_value = True
        return supervisor, [child, parent]

    def test_graceful_then_forceful(self):
        """Тест: сначала мягкое завершение, принудительное - не раньше grace-периода."""
        supervisor, tree = self._supervisor(grace_period_ms=200)

        with patch.object(supervisor, "_collect_tree", return_value=tree):
            supervisor.escalate(TERMINATION_TIMEOUT)

            for proc in tree:
                proc.terminate.assert_called_once()
                proc.kill.assert_not_called()

            time.sleep(0.05)
            for proc in tree:
                proc.kill.assert_not_called()

            time.sleep(0.4)
            for proc in tree:
                proc.kill.assert_called_once()

        assert supervisor.termination == TERMINATION_TIMEOUT

    def test_no_kill_when_process_exited(self):
        """Тест: процесс, завершившийся в grace-период, не добивается."""
        supervisor, tree = self._supervisor(grace_period_ms=50)
        supervisor.process.poll.return_value = 0
        for proc in tree:
            proc.is_running.return_value = False

        with patch.object(supervisor, "_collect_tree", return_value=tree):
            supervisor.escalate(TERMINATION_CANCELLED)
            time.sleep(0.2)

        for proc in tree:
            proc.kill.assert_not_called()

    def test_first_trigger_wins(self):
        """Тест: повторная эскалация игнорируется, причина не меняется."""
        supervisor, tree = self._supervisor(grace_period_ms=1000)

        with patch.object(supervisor, "_collect_tree", return_value=tree):
            supervisor.escalate(TERMINATION_CANCELLED)
            supervisor.escalate(TERMINATION_TIMEOUT)
            supervisor.cancel_timers()

        assert supervisor.termination == TERMINATION_CANCELLED
        for proc in tree:
            proc.terminate.assert_called_once()


class TestRunProcess:
    """Тесты запуска реальных процессов."""

    def test_captures_output_and_exit_code(self):
        """Тест захвата stdout, stderr и кода выхода."""
        outcome = run_process(
            [sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr); sys.exit(3)"],
            timeout_ms=10_000,
            output_cap=1024,
            grace_period_ms=1000,
        )

        assert outcome.exit_code == 3
        assert outcome.stdout == "out"
        assert outcome.stderr == "err"
        assert not outcome.killed
        assert outcome.spawn_error is None

    def test_spawn_error(self):
        """Тест ошибки запуска несуществующей программы."""
        outcome = run_process(
            ["definitely-not-an-installed-program-7f3a"],
            timeout_ms=1000,
            output_cap=1024,
            grace_period_ms=100,
        )

        assert outcome.spawn_error
        assert outcome.exit_code is None

    @posix_only
    def test_timeout_escalates_to_kill_for_stubborn_process(self):
        """Тест: процесс, игнорирующий SIGTERM, убивается после grace-периода."""
        script = (
            "import signal, time\n"
            "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
            "print('ready', flush=True)\n"
            "time.sleep(60)\n"
        )
        start = time.monotonic()
        outcome = run_process(
            [sys.executable, "-c", script],
            timeout_ms=1000,
            output_cap=1024,
            grace_period_ms=500,
        )
        elapsed = time.monotonic() - start

        assert outcome.termination == TERMINATION_TIMEOUT
        assert outcome.exit_code == -1
        assert outcome.stdout == "ready"
        assert elapsed >= 1.5
        assert elapsed < 10

    @posix_only
    def test_cancellation_terminates_process(self):
        """Тест: отмена токена завершает процесс мягким сигналом."""
        token = CancellationToken()
        threading.Timer(0.2, token.cancel).start()

        start = time.monotonic()
        outcome = run_process(
            [sys.executable, "-c", "import time; time.sleep(60)"],
            timeout_ms=60_000,
            token=token,
            output_cap=1024,
            grace_period_ms=5000,
        )

        assert outcome.termination == TERMINATION_CANCELLED
        assert outcome.exit_code == -1
        assert time.monotonic() - start < 5

    def test_already_cancelled_token(self):
        """Тест: уже отмененный токен сразу запускает эскалацию."""
        token = CancellationToken()
        token.cancel()

        outcome = run_process(
            [sys.executable, "-c", "import time; time.sleep(60)"],
            timeout_ms=60_000,
            token=token,
            output_cap=1024,
            grace_period_ms=1000,
        )

        assert outcome.termination == TERMINATION_CANCELLED
