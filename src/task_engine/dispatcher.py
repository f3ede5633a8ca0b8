"""
Диспетчер запусков: опрос хранилища и выполнение заданий через очередь.
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

from .core.registry import QueueRegistry, default_registry
from .core.task_queue import TaskQueue, is_cancellation_error
from .models.run import ClaimedRun, OfflineSyncResult
from .models.worker import JobConfig, WorkerResult
from .utils.config import DispatcherConfig, WorkerConfig
from .utils.logger import get_logger
from .workers import Worker, create_workers, get_worker
from .exceptions import UnknownWorkerError


logger = get_logger(__name__)


# Предупреждение о недоступном хранилище - первое и каждое N-е подряд
_ERROR_LOG_EVERY = 6


class RunStore(ABC):
    """Хранилище запусков, с которым работает диспетчер."""

    @abstractmethod
    def claim_pending(self) -> Optional[ClaimedRun]:
        """Атомарный захват самого старого ожидающего запуска."""

    @abstractmethod
    def complete(self, run_id: str, result: WorkerResult):
        """Запись успешного результата."""

    @abstractmethod
    def fail(self, run_id: str, error: str):
        """Запись неуспешного результата."""

    def mark_cancelled(self, run_id: str):
        """Отмененный запуск не является ошибкой; по умолчанию ничего не записывается."""

    @abstractmethod
    def sync_missed_schedules(self) -> OfflineSyncResult:
        """Создание догоняющих запусков для расписаний, пропущенных пока приложение было закрыто."""


class Dispatcher:
    """
    Периодический опрос хранилища и выполнение запусков.

    Каждый запуск выполняется соответствующим воркером через общую
    очередь (по умолчанию "automation"); запуски обрабатываются по одному.
    """

    def __init__(
        self,
        store: RunStore,
        queue: Optional[TaskQueue] = None,
        registry: Optional[QueueRegistry] = None,
        workers: Optional[Dict[str, Worker]] = None,
        config: Optional[DispatcherConfig] = None,
        worker_config: Optional[WorkerConfig] = None
    ):
        self.store = store
        self.config = config or DispatcherConfig()
        if queue is None:
            queue = (registry or default_registry).get_queue(
                self.config.queue_name, concurrency=self.config.concurrency
            )
        self.queue = queue
        self.workers = workers if workers is not None else create_workers(worker_config)

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        # Поток, не успевший завершиться за stop_timeout
        self._stopping_thread: Optional[threading.Thread] = None
        self._current_task_id: Optional[str] = None
        self._consecutive_errors = 0

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive_errors

    def start(self) -> bool:
        """
        Запуск опроса. Повторный вызов ничего не делает.

        Пока предыдущий цикл опроса не завершился после stop(), новый
        не запускается: запуски обрабатываются строго по одному.

        Returns:
            True если цикл опроса работает
        """
        with self._lock:
            if self._thread and self._thread.is_alive():
                return True
            previous = self._stopping_thread

        if previous is not None:
            previous.join(timeout=self.config.stop_timeout)
            if previous.is_alive():
                logger.warning("Previous dispatcher loop is still finishing a run, not starting")
                return False

        with self._lock:
            if self._thread and self._thread.is_alive():
                return True

            self._stopping_thread = None
            # У каждого цикла собственное событие остановки
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._poll_loop, args=(self._stop_event,), name="dispatcher", daemon=True
            )
            self._thread.start()

        logger.info(f"Dispatcher started, polling every {self.config.poll_interval}s")
        return True

    def stop(self):
        """Остановка опроса и отмена выполняемого запуска. Повторный вызов ничего не делает."""
        with self._lock:
            thread = self._thread
            self._thread = None
            if thread is None:
                return
            self._stop_event.set()
            task_id = self._current_task_id

        if task_id is not None:
            self.queue.cancel(task_id)

        thread.join(timeout=self.config.stop_timeout)
        if thread.is_alive():
            logger.warning(f"Dispatcher thread did not stop within {self.config.stop_timeout}s")
            with self._lock:
                self._stopping_thread = thread

        self._consecutive_errors = 0
        logger.info("Dispatcher stopped")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def next_delay(self) -> float:
        """Пауза до следующего опроса с экспоненциальным backoff при ошибках."""
        if self._consecutive_errors == 0:
            return self.config.poll_interval
        backoff = self.config.poll_interval * (2 ** (self._consecutive_errors - 1))
        return min(backoff, self.config.max_backoff)

    def _poll_loop(self, stop_event: threading.Event):
        while not stop_event.is_set():
            processed = False
            try:
                processed = self.poll_once()
                self._consecutive_errors = 0
            except Exception as e:
                self._consecutive_errors += 1
                if self._consecutive_errors == 1 or self._consecutive_errors % _ERROR_LOG_EVERY == 0:
                    logger.warning(f"Run store unreachable (attempt {self._consecutive_errors}): {e}")

            # После обработанного запуска сразу проверяем следующий
            if processed:
                continue
            stop_event.wait(self.next_delay())

    def poll_once(self) -> bool:
        """
        Один цикл опроса: захват и выполнение одного запуска.

        Returns:
            True если запуск был захвачен и обработан
        """
        run = self.store.claim_pending()
        if run is None:
            return False

        logger.info(f"Claimed run {run.run_id} for job {run.job_name!r} ({run.worker_type})")
        self.dispatch(run)
        return True

    def dispatch(self, run: ClaimedRun):
        """Выполнение захваченного запуска и запись результата."""
        try:
            worker = get_worker(run.worker_type, self.workers)
        except UnknownWorkerError as e:
            logger.error(f"Run {run.run_id}: {e}")
            self.store.fail(run.run_id, str(e))
            return

        job = JobConfig.from_dict(run.config)
        task_id, future = self.queue.enqueue(worker.as_task(job), name=f"run-{run.run_id}")
        with self._lock:
            self._current_task_id = task_id
            stopping = self._stop_event.is_set()

        if stopping:
            # stop() мог не застать ID задачи
            self.queue.cancel(task_id)

        try:
            result: WorkerResult = future.result()
        except Exception as e:
            if is_cancellation_error(e):
                logger.info(f"Run {run.run_id} cancelled")
                self.store.mark_cancelled(run.run_id)
            else:
                logger.error(f"Run {run.run_id} threw: {e}")
                self.store.fail(run.run_id, str(e) or type(e).__name__)
            return
        finally:
            with self._lock:
                self._current_task_id = None

        if result.success:
            logger.info(f"Run {run.run_id} completed in {result.duration}ms")
            self.store.complete(run.run_id, result)
        else:
            logger.warning(f"Run {run.run_id} failed: {result.error}")
            self.store.fail(run.run_id, result.error)

    def run_offline_sync(self) -> OfflineSyncResult:
        """
        Однократная догоняющая синхронизация перед началом опроса.

        Никогда не выбрасывает исключений, сбой записывается в errors.
        """
        try:
            result = self.store.sync_missed_schedules()
        except Exception as e:
            message = f"Offline sync failed: {e}"
            logger.error(message)
            return OfflineSyncResult(errors=[message])

        logger.info(
            f"Offline sync complete: {result.schedules_processed} processed, "
            f"{result.runs_created} runs created, {result.skipped} skipped"
            + (f", {len(result.errors)} errors" if result.errors else "")
        )
        return result

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    def __repr__(self) -> str:
        return f"Dispatcher(queue={self.queue.name!r}, running={self.is_running()})"
