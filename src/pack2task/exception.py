from typing import List, Optional

import click


class Pack2TaskError(click.ClickException):
    """
    Базовое исключение pack2task.

    description - человекочитаемое описание (его печатает click при выходе),
    logs        - логи шагов, накопленные до момента ошибки.
    """

    def __init__(
        self,
        description: str = "Something happend...",
        logs: Optional[List[str]] = None,
    ) -> None:
        super().__init__(description)
        self.description = description
        self.logs: List[str] = logs or []


class ConfigError(Pack2TaskError):
    """Некорректная или неполная конфигурация пайплайна."""


class MissingOptionError(ConfigError):
    def __init__(self, option: str) -> None:
        super().__init__(f"missing option: --{option}")
        self.option = option


class LabelFormatError(ConfigError):
    def __init__(self, label: str, parts: int) -> None:
        super().__init__(f"expected 2 parts to label {label!r} but got {parts}")
        self.label = label


class UnsupportedKindError(ConfigError):
    def __init__(self, kind: str, supported: List[str]) -> None:
        super().__init__(
            f"Unknown pipeline kind {kind}. Supported values are {', '.join(supported)}"
        )
        self.kind = kind


class NoContainersError(ConfigError):
    def __init__(self, template: str) -> None:
        super().__init__(f"No Containers for pod template {template}")
        self.template = template


class MissingVersionStageError(ConfigError):
    """У release-пайплайна нет стадии setversion."""


class CommandExecutionError(Pack2TaskError):
    def __init__(self, command: str, directory: str, error: str) -> None:
        super().__init__(f"failed to run command {command!r} in dir {directory}: {error}")
        self.command = command
        self.directory = directory
        self.error = error


class ValidationError(Pack2TaskError):
    """Сгенерированный Task / Pipeline не прошёл структурную проверку."""


class ApplyError(Pack2TaskError):
    """Ошибка при создании/обновлении объектов в кластере."""


class StructurePersistError(ApplyError):
    """PipelineRun создан, но PipelineStructure сохранить не удалось."""


class OutputError(Pack2TaskError):
    """Не удалось записать сгенерированные документы на диск."""
