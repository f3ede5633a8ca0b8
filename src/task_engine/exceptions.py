"""
Исключения движка выполнения задач.
"""


class TaskEngineError(Exception):
    """Базовое исключение движка задач."""
    pass


class TaskCancelledError(TaskEngineError):
    """Задача отменена вызывающей стороной."""

    def __init__(self, message: str = "Task cancelled", task_id: str = None):
        super().__init__(message)
        self.task_id = task_id


class ConfigurationError(TaskEngineError):
    """Ошибка конфигурации."""
    pass


class UnknownWorkerError(ConfigurationError):
    """Неизвестный тип воркера."""

    def __init__(self, worker_type: str):
        super().__init__(f"Unknown worker type: {worker_type}")
        self.worker_type = worker_type


class PromptExecutionError(TaskEngineError):
    """Ошибка выполнения промпта внешним клиентом."""

    def __init__(self, message: str, exit_code: int = None):
        super().__init__(message)
        self.exit_code = exit_code


class PromptCancelledError(PromptExecutionError):
    """Выполнение промпта отменено вызывающей стороной."""
    pass


class PromptTimeoutError(PromptExecutionError):
    """Выполнение промпта прервано по таймауту."""
    pass
