"""
Модели воркеров: конфигурация задания и результат выполнения.
"""

from enum import Enum
from typing import Any, Dict, Optional
from dataclasses import dataclass, field, asdict


class ShellType(Enum):
    """Поддерживаемые оболочки ExecWorker."""
    PWSH = "pwsh"
    POWERSHELL = "powershell"
    POWERSHELL5 = "powershell5"
    BASH = "bash"
    SH = "sh"
    CMD = "cmd"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional['ShellType']:
        """Разбор имени оболочки. Неизвестное имя дает None."""
        if not value:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None

    @property
    def is_powershell(self) -> bool:
        return self in (ShellType.PWSH, ShellType.POWERSHELL, ShellType.POWERSHELL5)


@dataclass(frozen=True)
class WorkerResult:
    """
    Результат выполнения воркера.

    success=True означает отсутствие error, success=False требует error.
    duration - миллисекунды от начала выполнения до результата.
    """

    success: bool
    duration: int
    output: Optional[str] = None
    error: Optional[str] = None
    exit_code: Optional[int] = None

    def __post_init__(self):
        if self.success and self.error is not None:
            raise ValueError("Successful result must not carry an error")
        if not self.success and not self.error:
            raise ValueError("Failed result must carry an error")

    @classmethod
    def failure(
        cls,
        error: str,
        duration: int,
        output: Optional[str] = None,
        exit_code: Optional[int] = None
    ) -> 'WorkerResult':
        """Создание неуспешного результата."""
        return cls(success=False, duration=duration, output=output, error=error, exit_code=exit_code)

    def to_dict(self) -> Dict[str, Any]:
        """Преобразование в словарь без пустых полей."""
        return {key: value for key, value in asdict(self).items() if value is not None}


# Ключи хранимых заданий в camelCase -> поля JobConfig
_CAMEL_CASE_KEYS = {
    'skillName': 'skill_name',
    'maxTokens': 'max_tokens',
}


@dataclass
class JobConfig:
    """
    Конфигурация задания - объединение полей всех воркеров.

    Каждый воркер читает только свои поля:
    exec - command, cwd, timeout, shell;
    ai - prompt, model, timeout, max_tokens, temperature;
    skill - skill_name, action, params, model, timeout.
    timeout задается в миллисекундах.
    """

    # exec
    command: Optional[str] = None
    cwd: Optional[str] = None
    timeout: Optional[int] = None
    shell: Optional[str] = None
    # ai
    prompt: Optional[str] = None
    model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    # skill
    skill_name: Optional[str] = None
    action: Optional[str] = None
    params: Any = None
    # Нераспознанные ключи хранимой записи
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'JobConfig':
        """
        Создание из словаря хранимого задания.

        Args:
            data: Словарь с ключами в snake_case или camelCase

        Returns:
            Конфигурация задания
        """
        known = {f for f in cls.__dataclass_fields__ if f != 'extra'}
        values: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}

        for key, value in (data or {}).items():
            name = _CAMEL_CASE_KEYS.get(key, key)
            if name in known:
                values[name] = value
            else:
                extra[key] = value

        return cls(extra=extra, **values)
