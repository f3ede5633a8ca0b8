"""
Система конфигурации движка задач.
"""

import json
import yaml
import os
from typing import Any, Dict, Union
from dataclasses import dataclass, field, asdict
from pathlib import Path

from ..exceptions import ConfigurationError


def _default_skills_dir() -> str:
    return str(Path.home() / ".copilot" / "skills")


@dataclass
class WorkerConfig:
    """Константы воркеров: таймауты и лимиты вывода."""
    exec_timeout_ms: int = 30_000
    exec_output_cap_bytes: int = 512_000  # На каждый поток
    ai_timeout_ms: int = 120_000  # Вызовы моделей медленные
    ai_output_cap_bytes: int = 1_048_576
    kill_grace_period_ms: int = 5_000  # Между SIGTERM и SIGKILL
    default_model: str = "claude-sonnet-4.5"
    copilot_command: str = "copilot"
    skills_dir: str = field(default_factory=_default_skills_dir)


@dataclass
class DispatcherConfig:
    """Конфигурация диспетчера запусков."""
    poll_interval: float = 10.0  # Секунды
    max_backoff: float = 120.0  # Секунды
    queue_name: str = "automation"
    concurrency: int = 1
    stop_timeout: float = 10.0  # Ожидание потока опроса при stop()


@dataclass
class Config:
    """Основная конфигурация движка задач."""

    default_concurrency: int = 1
    log_level: str = "INFO"
    log_file: str = None

    # Конфигурации компонентов
    workers: WorkerConfig = None
    dispatcher: DispatcherConfig = None

    def __post_init__(self):
        """Инициализация конфигураций по умолчанию."""
        if self.workers is None:
            self.workers = WorkerConfig()
        if self.dispatcher is None:
            self.dispatcher = DispatcherConfig()

    def to_dict(self) -> Dict[str, Any]:
        """Преобразование в словарь."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Создание из словаря."""
        data = dict(data or {})
        workers_data = data.pop('workers', None) or {}
        dispatcher_data = data.pop('dispatcher', None) or {}

        try:
            config = cls(**data)
            config.workers = WorkerConfig(**workers_data)
            config.dispatcher = DispatcherConfig(**dispatcher_data)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        return config

    def validate(self) -> bool:
        """Валидация конфигурации."""
        errors = []

        if self.default_concurrency < 1:
            errors.append("default_concurrency must be >= 1")

        for name in ('exec_timeout_ms', 'ai_timeout_ms', 'exec_output_cap_bytes', 'ai_output_cap_bytes'):
            if getattr(self.workers, name) <= 0:
                errors.append(f"workers.{name} must be > 0")

        if self.workers.kill_grace_period_ms < 0:
            errors.append("workers.kill_grace_period_ms must be >= 0")

        if self.dispatcher.poll_interval <= 0:
            errors.append("dispatcher.poll_interval must be > 0")

        if self.dispatcher.max_backoff < self.dispatcher.poll_interval:
            errors.append("dispatcher.max_backoff must be >= dispatcher.poll_interval")

        if self.dispatcher.concurrency < 1:
            errors.append("dispatcher.concurrency must be >= 1")

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

        return True


def load_config(file_path: Union[str, Path]) -> Config:
    """
    Загрузка конфигурации из файла.

    Args:
        file_path: Путь к файлу конфигурации (.yaml, .yml или .json)

    Returns:
        Объект конфигурации
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    with open(file_path, 'r', encoding='utf-8') as f:
        try:
            if file_path.suffix.lower() in ['.yaml', '.yml']:
                data = yaml.safe_load(f)
            elif file_path.suffix.lower() == '.json':
                data = json.load(f)
            else:
                raise ConfigurationError(f"Unsupported configuration file format: {file_path.suffix}")
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot parse configuration file {file_path}: {e}") from e

    if data is not None and not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {file_path} must contain a mapping")

    config = Config.from_dict(data or {})
    config.validate()

    return config


def save_config(config: Config, file_path: Union[str, Path], format: str = 'yaml'):
    """
    Сохранение конфигурации в файл.

    Args:
        config: Объект конфигурации
        file_path: Путь к файлу
        format: Формат файла ('yaml' или 'json')
    """
    file_path = Path(file_path)
    data = config.to_dict()

    file_path.parent.mkdir(parents=True, exist_ok=True)

    with open(file_path, 'w', encoding='utf-8') as f:
        if format.lower() == 'yaml':
            yaml.safe_dump(data, f, default_flow_style=False, indent=2)
        elif format.lower() == 'json':
            json.dump(data, f, indent=2, ensure_ascii=False)
        else:
            raise ConfigurationError(f"Unsupported format: {format}")


def load_config_from_env() -> Config:
    """
    Загрузка конфигурации из переменных окружения TASK_ENGINE_*.

    Returns:
        Объект конфигурации
    """
    config_data: Dict[str, Any] = {}

    if os.getenv('TASK_ENGINE_CONCURRENCY'):
        config_data['default_concurrency'] = int(os.getenv('TASK_ENGINE_CONCURRENCY'))

    if os.getenv('TASK_ENGINE_LOG_LEVEL'):
        config_data['log_level'] = os.getenv('TASK_ENGINE_LOG_LEVEL')

    if os.getenv('TASK_ENGINE_LOG_FILE'):
        config_data['log_file'] = os.getenv('TASK_ENGINE_LOG_FILE')

    # Конфигурация воркеров
    workers_data: Dict[str, Any] = {}
    for env_name, key in (
        ('TASK_ENGINE_EXEC_TIMEOUT_MS', 'exec_timeout_ms'),
        ('TASK_ENGINE_EXEC_OUTPUT_CAP', 'exec_output_cap_bytes'),
        ('TASK_ENGINE_AI_TIMEOUT_MS', 'ai_timeout_ms'),
        ('TASK_ENGINE_AI_OUTPUT_CAP', 'ai_output_cap_bytes'),
        ('TASK_ENGINE_KILL_GRACE_MS', 'kill_grace_period_ms'),
    ):
        if os.getenv(env_name):
            workers_data[key] = int(os.getenv(env_name))

    if os.getenv('TASK_ENGINE_MODEL'):
        workers_data['default_model'] = os.getenv('TASK_ENGINE_MODEL')

    if os.getenv('TASK_ENGINE_COPILOT_COMMAND'):
        workers_data['copilot_command'] = os.getenv('TASK_ENGINE_COPILOT_COMMAND')

    if os.getenv('TASK_ENGINE_SKILLS_DIR'):
        workers_data['skills_dir'] = os.getenv('TASK_ENGINE_SKILLS_DIR')

    if workers_data:
        config_data['workers'] = workers_data

    # Конфигурация диспетчера
    dispatcher_data: Dict[str, Any] = {}
    if os.getenv('TASK_ENGINE_POLL_INTERVAL'):
        dispatcher_data['poll_interval'] = float(os.getenv('TASK_ENGINE_POLL_INTERVAL'))

    if os.getenv('TASK_ENGINE_MAX_BACKOFF'):
        dispatcher_data['max_backoff'] = float(os.getenv('TASK_ENGINE_MAX_BACKOFF'))

    if os.getenv('TASK_ENGINE_DISPATCH_QUEUE'):
        dispatcher_data['queue_name'] = os.getenv('TASK_ENGINE_DISPATCH_QUEUE')

    if dispatcher_data:
        config_data['dispatcher'] = dispatcher_data

    config = Config.from_dict(config_data)
    config.validate()
    return config
