import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Protocol, Tuple

from pack2task.core.config import VERSION_FILE
from pack2task.core.models import Param
from pack2task.exception import (
    CommandExecutionError,
    ConfigError,
    MissingVersionStageError,
)
from pack2task.model import PIPELINE_KIND_RELEASE, PipelineConfig, PipelineStep
from pack2task.utils import info, log, warn


# Шаги с таким when не запускаются при вычислении версии
EXCLUDED_WHEN = "!prow"


class CommandRunner(Protocol):
    def run(self, command: str, directory: str) -> Tuple[str, Optional[str]]:
        """Возвращает (вывод, ошибка); ошибка None, если команда успешна."""
        ...


class ShellCommandRunner:
    """Синхронно запускает команду через /bin/sh -c в указанной директории."""

    def run(self, command: str, directory: str) -> Tuple[str, Optional[str]]:
        try:
            p = subprocess.run(
                ["/bin/sh", "-c", command],
                cwd=directory or None,
                text=True,
                capture_output=True,
                check=False,
            )
        except OSError as e:
            return "", str(e)
        if p.returncode != 0:
            return p.stdout, (p.stderr.strip() or f"exit status {p.returncode}")
        return p.stdout, None


@dataclass
class VersionResult:
    params: List[Param] = field(default_factory=list)
    version: str = ""
    revision: str = ""


class VersionResolver:
    """
    Вычисляет параметр версии для пайплайна.

    release     - выполняет шаги стадии setversion и читает файл VERSION,
                  результат: параметр version и git-ревизия v<version>;
    остальные   - синтезирует preview_version = 0.0.0-SNAPSHOT-<branch>-<build>.
    """

    def __init__(
        self,
        runner: CommandRunner,
        directory: str,
        logs: Optional[List[str]] = None,
        warnings: Optional[List[str]] = None,
    ) -> None:
        self.runner = runner
        self.directory = directory
        self.logs: List[str] = logs if logs is not None else []
        self.warnings: List[str] = warnings if warnings is not None else []

    def resolve(
        self,
        config: PipelineConfig,
        kind: str,
        branch: str = "",
        revision: str = "",
        build_number: str = "1",
        no_set_version: bool = False,
        view_steps: bool = False,
    ) -> VersionResult:
        if no_set_version or view_steps:
            return VersionResult(revision=revision)
        if kind == PIPELINE_KIND_RELEASE:
            return self._release_version(config, revision)
        return self._preview_version(branch or revision, build_number, revision)

    def _release_version(self, config: PipelineConfig, revision: str) -> VersionResult:
        release = config.pipelines.release
        if release is None:
            raise ConfigError("no Release pipeline available")
        if release.setversion is None:
            raise MissingVersionStageError("no SetVersion pipeline on the Release pipeline")

        self.invoke_steps(release.setversion.steps)

        result = VersionResult(revision=revision)
        version_file = Path(self.directory) / VERSION_FILE
        if version_file.is_file():
            try:
                text = version_file.read_text(encoding="utf-8").strip()
            except OSError as e:
                raise ConfigError(f"failed to read file {version_file}: {e}") from e
            if not text:
                warn(self.warnings, f"versions file {version_file} is empty!")
            else:
                result.version = text

        if result.version:
            result.params.append(Param(name="version", value=result.version))
            result.revision = "v" + result.version
            log(self.logs, f"Версия релиза: {info(result.version)}")
        return result

    def _preview_version(self, branch: str, build_number: str, revision: str) -> VersionResult:
        version = f"0.0.0-SNAPSHOT-{branch}-{build_number}"
        log(self.logs, f"Preview-версия: {info(version)}")
        return VersionResult(
            params=[Param(name="preview_version", value=version)],
            version=version,
            revision=revision,
        )

    def invoke_steps(self, steps: List[PipelineStep]) -> None:
        """
        Обходит дерево шагов: сначала дети узла, затем его собственная команда
        (если when не исключает шаг и команда не пустая).
        """
        for step in steps:
            if step is None:
                continue
            if step.steps:
                self.invoke_steps(step.steps)
            if step.when.strip() == EXCLUDED_WHEN or not step.command:
                continue
            self.run_step_command(step)

    def run_step_command(self, step: PipelineStep) -> None:
        log(self.logs, f"running command: {info(step.command)}")
        command = step.command.replace("\\$", "$")
        output, error = self.runner.run(command, self.directory)
        if error is not None:
            raise CommandExecutionError(command, self.directory, error)
        if output:
            log(self.logs, output.rstrip())
