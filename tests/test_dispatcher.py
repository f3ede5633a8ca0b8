"""
Тесты диспетчера запусков.
"""

import threading
import time
import pytest
from unittest.mock import Mock

from task_engine.core.registry import QueueRegistry
from task_engine.dispatcher import Dispatcher, RunStore
from task_engine.models.run import ClaimedRun, OfflineSyncResult
from task_engine.models.worker import JobConfig, WorkerResult
from task_engine.utils.config import DispatcherConfig
from task_engine.workers import Worker


class StubWorker(Worker):
    """Воркер с заранее заданным результатом."""

    worker_type = "stub"

    def __init__(self, result=None, on_execute=None):
        super().__init__()
        self.result = result
        self.on_execute = on_execute
        self.jobs = []

    def _execute(self, job, token, start):
        self.jobs.append(job)
        if self.on_execute is not None:
            return self.on_execute(token)
        return self.result


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def store():
    store = Mock(spec=RunStore)
    store.claim_pending.return_value = None
    return store


def make_dispatcher(store, workers, **config):
    return Dispatcher(
        store,
        registry=QueueRegistry(),
        workers=workers,
        config=DispatcherConfig(**config)
    )


class TestDispatch:
    """Тесты выполнения захваченных запусков."""

    def test_success_is_completed(self, store):
        """Тест записи успешного результата."""
        result = WorkerResult(success=True, duration=3, output="done", exit_code=0)
        worker = StubWorker(result)
        dispatcher = make_dispatcher(store, {"exec": worker})

        dispatcher.dispatch(ClaimedRun("run-1", "exec", {"command": "echo", "timeout": 50}, "nightly"))

        store.complete.assert_called_once_with("run-1", result)
        store.fail.assert_not_called()
        assert worker.jobs == [JobConfig(command="echo", timeout=50)]

    def test_failure_is_failed(self, store):
        """Тест записи неуспешного результата."""
        dispatcher = make_dispatcher(store, {"exec": StubWorker(WorkerResult.failure("exit 1", 3))})

        dispatcher.dispatch(ClaimedRun("run-2", "exec"))

        store.fail.assert_called_once_with("run-2", "exit 1")
        store.complete.assert_not_called()

    def test_unknown_worker_type(self, store):
        """Тест неизвестного типа задания."""
        dispatcher = make_dispatcher(store, {})

        dispatcher.dispatch(ClaimedRun("run-3", "email"))

        store.fail.assert_called_once_with("run-3", "Unknown worker type: email")
        assert dispatcher.queue.get_stats().settled == 0

    def test_task_exception_is_failed(self, store):
        """Тест: исключение функции задачи записывается как ошибка."""
        def crash(token):
            raise RuntimeError("boom")

        worker = Mock()
        worker.as_task.return_value = crash
        dispatcher = make_dispatcher(store, {"ai": worker})

        dispatcher.dispatch(ClaimedRun("run-4", "ai", {"prompt": "hi"}))

        store.fail.assert_called_once_with("run-4", "boom")

    def test_uses_automation_queue(self, store):
        """Тест очереди по умолчанию."""
        registry = QueueRegistry()
        dispatcher = Dispatcher(store, registry=registry, workers={})

        assert dispatcher.queue.name == "automation"
        assert registry.get_queue("automation") is dispatcher.queue

    def test_poll_once(self, store):
        """Тест одного цикла опроса."""
        result = WorkerResult(success=True, duration=1)
        store.claim_pending.side_effect = [ClaimedRun("run-5", "exec"), None]
        dispatcher = make_dispatcher(store, {"exec": StubWorker(result)})

        assert dispatcher.poll_once()
        assert not dispatcher.poll_once()
        store.complete.assert_called_once_with("run-5", result)


class TestLifecycle:
    """Тесты запуска, остановки и backoff."""

    def test_processes_runs_back_to_back(self, store):
        """Тест: после обработанного запуска следующий берется сразу."""
        result = WorkerResult(success=True, duration=1)
        runs = [ClaimedRun(f"run-{i}", "exec") for i in range(3)]
        store.claim_pending.side_effect = runs + [None] * 100
        dispatcher = make_dispatcher(store, {"exec": StubWorker(result)}, poll_interval=60.0)

        with dispatcher:
            assert wait_until(lambda: store.complete.call_count == 3, timeout=2)

        assert not dispatcher.is_running()

    def test_start_and_stop_are_idempotent(self, store):
        """Тест повторных start() и stop()."""
        dispatcher = make_dispatcher(store, {}, poll_interval=0.05)

        dispatcher.start()
        thread = dispatcher._thread
        dispatcher.start()
        assert dispatcher._thread is thread
        assert dispatcher.is_running()

        dispatcher.stop()
        dispatcher.stop()
        assert not dispatcher.is_running()

    def test_stop_cancels_running_task(self, store):
        """Тест: остановка отменяет выполняемый запуск, отмена не считается ошибкой."""
        started = threading.Event()

        def long_job(token):
            started.set()
            token.wait(5)
            return WorkerResult.failure("Cancelled by user", 0)

        store.claim_pending.side_effect = [ClaimedRun("run-6", "exec")] + [None] * 100
        dispatcher = make_dispatcher(store, {"exec": StubWorker(on_execute=long_job)})

        dispatcher.start()
        assert started.wait(5)
        dispatcher.stop()

        store.mark_cancelled.assert_called_once_with("run-6")
        store.fail.assert_not_called()
        store.complete.assert_not_called()

    def test_restart_waits_for_unfinished_loop(self, store):
        """Тест: после stop() с истекшим ожиданием старый и новый циклы не работают одновременно."""
        claims = []

        def claim():
            claims.append(threading.current_thread())
            return ClaimedRun("run-7", "exec") if len(claims) == 1 else None

        started = threading.Event()

        def stubborn_job(token):
            started.set()
            time.sleep(1)
            return WorkerResult(success=True, duration=1000)

        store.claim_pending.side_effect = claim
        dispatcher = make_dispatcher(
            store,
            {"exec": StubWorker(on_execute=stubborn_job)},
            poll_interval=0.01,
            max_backoff=0.01,
            stop_timeout=0.1,
        )

        dispatcher.start()
        assert started.wait(5)
        dispatcher.stop()

        assert not dispatcher.start()
        assert not dispatcher.is_running()

        assert wait_until(lambda: store.mark_cancelled.called)
        assert wait_until(dispatcher.start)
        assert wait_until(lambda: len(claims) >= 3)
        dispatcher.stop()

        first_loop = claims[0]
        later = claims[1:]
        assert later
        assert all(thread is not first_loop for thread in later)
        store.mark_cancelled.assert_called_once_with("run-7")

    def test_backoff(self, store):
        """Тест экспоненциального backoff при недоступном хранилище."""
        dispatcher = make_dispatcher(store, {}, poll_interval=10.0, max_backoff=120.0)

        delays = []
        for errors in range(6):
            dispatcher._consecutive_errors = errors
            delays.append(dispatcher.next_delay())

        assert delays == [10.0, 10.0, 20.0, 40.0, 80.0, 120.0]

    def test_store_errors_are_counted_and_reset(self, store):
        """Тест: ошибки хранилища не останавливают опрос."""
        store.claim_pending.side_effect = ConnectionError("database is locked")
        dispatcher = make_dispatcher(store, {}, poll_interval=0.01, max_backoff=0.02)

        dispatcher.start()
        assert wait_until(lambda: dispatcher.consecutive_errors >= 3)
        assert dispatcher.is_running()

        dispatcher.stop()
        assert dispatcher.consecutive_errors == 0


class TestOfflineSync:
    """Тесты догоняющей синхронизации."""

    def test_delegates_to_store(self, store):
        """Тест возврата результата хранилища."""
        expected = OfflineSyncResult(schedules_processed=4, runs_created=2, skipped=2)
        store.sync_missed_schedules.return_value = expected

        assert make_dispatcher(store, {}).run_offline_sync() is expected

    def test_never_raises(self, store):
        """Тест: сбой синхронизации записывается в errors."""
        store.sync_missed_schedules.side_effect = RuntimeError("db locked")

        result = make_dispatcher(store, {}).run_offline_sync()

        assert result.errors == ["Offline sync failed: db locked"]
        assert result.runs_created == 0
