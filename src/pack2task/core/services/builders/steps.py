import posixpath
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from pack2task.core.config import DEFAULT_CONTAINER, WORKSPACE_ROOT
from pack2task.core.models import Container, GitRepository, Volume
from pack2task.exception import ConfigError, UnsupportedKindError
from pack2task.model import (
    PIPELINE_KIND_RELEASE,
    PIPELINE_KINDS,
    PipelineConfig,
    PipelineLifecycle,
    PipelineLifecycles,
    PipelineStep,
)
from pack2task.utils import info, log, warn

from .injector import InjectionContext, combine_volumes, inject
from .pod_templates import PodTemplateResolver


GIT_CREDENTIALS_STEP = PipelineStep(name="jx-git-credentials", command="jx step git credentials")

# Старый способ передачи версии через файл VERSION -> переменная окружения
_LEGACY_VERSION_PREFIX = "export VERSION=`cat VERSION` && "
_LEGACY_VERSION_FILES = ["$(cat VERSION)", "$(cat ../VERSION)", "$(cat ../../VERSION)"]


def replace_command_text(command: str) -> str:
    """
    Убирает экранированные "\\$" из команд build pack'а и переписывает чтение
    файла VERSION на переменную окружения ${VERSION}.
    """
    answer = command.replace("\\$", "$")
    answer = answer.replace(_LEGACY_VERSION_PREFIX, "", 1)
    for text in _LEGACY_VERSION_FILES:
        answer = answer.replace(text, "${VERSION}")
    return answer


def workspace_dir(source_name: str, root: str = WORKSPACE_ROOT) -> str:
    return posixpath.join(root, source_name)


def resolve_working_dir(directory: str, workspace: str) -> str:
    """Относительные пути считаются от workspace, абсолютные остаются как есть."""
    if not posixpath.isabs(directory):
        directory = posixpath.normpath(posixpath.join(workspace, directory))
    return directory


@dataclass
class CompiledSteps:
    steps: List[Container] = field(default_factory=list)
    volumes: List[Volume] = field(default_factory=list)


class StepCompiler:
    """
    Разворачивает дерево шагов lifecycle-стадий в плоский список контейнеров.

    Экземпляр рассчитан на один проход компиляции: счётчик шагов и набор
    отсутствующих pod template'ов живут в нём и не разделяются между запусками.
    """

    def __init__(
        self,
        pod_templates: PodTemplateResolver,
        injection: InjectionContext,
        git_info: Optional[GitRepository] = None,
        source_name: str = "source",
        custom_image: str = "",
        logs: Optional[List[str]] = None,
        warnings: Optional[List[str]] = None,
    ) -> None:
        self.pod_templates = pod_templates
        self.injection = injection
        self.git_info = git_info
        self.source_name = source_name
        self.custom_image = custom_image
        self.logs: List[str] = logs if logs is not None else []
        self.warnings: List[str] = warnings if warnings is not None else []
        self.step_counter = 0

    @property
    def workspace(self) -> str:
        return workspace_dir(self.source_name)

    def select_lifecycles(self, config: PipelineConfig, kind: str) -> PipelineLifecycles:
        if kind not in PIPELINE_KINDS:
            raise UnsupportedKindError(kind, PIPELINE_KINDS)
        lifecycles = config.pipelines.get(kind)
        if lifecycles is None:
            raise ConfigError(f"no {kind} pipeline lifecycles in the pipeline configuration")
        lifecycles = lifecycles.model_copy(deep=True)

        if kind == PIPELINE_KIND_RELEASE:
            # перед релизом нужно настроить git credentials
            if lifecycles.setup is None:
                lifecycles.setup = PipelineLifecycle()
            lifecycles.setup.steps.insert(0, GIT_CREDENTIALS_STEP.model_copy(deep=True))
        return lifecycles

    def compile(
        self,
        config: PipelineConfig,
        language: str,
        kind: str,
        set_version_stage: bool = True,
    ) -> CompiledSteps:
        """
        Компилирует lifecycle'ы вида kind в шаги Task.

        set_version_stage=False выкидывает стадию setversion целиком
        (версия тогда вычисляется заранее, до генерации Task).
        """
        lifecycles = self.select_lifecycles(config, kind)
        log(self.logs, f"Компилируем {kind}-пайплайн build pack'а {info(language or 'none')}")
        if self.git_info is None:
            warn(self.warnings, "No GitInfo available!")

        container = config.agent.container
        answer = CompiledSteps()
        for stage, lifecycle in lifecycles.all():
            if lifecycle is None:
                continue
            if stage == "setversion" and not set_version_stage:
                continue
            for step in lifecycle.steps:
                compiled = self._compile_step(step, container, self.workspace, stage)
                answer.steps.extend(compiled.steps)
                answer.volumes = combine_volumes(answer.volumes, *compiled.volumes)

        log(self.logs, f"Скомпилировано шагов: {len(answer.steps)}")
        return answer

    def _compile_step(
        self, step: PipelineStep, container: str, directory: str, prefix: str
    ) -> CompiledSteps:
        if step.container:
            container = step.container
        elif step.dir:
            directory = step.dir

        if self.git_info is not None:
            directory = directory.replace("REPLACE_ME_APP_NAME", self.git_info.name)
            directory = directory.replace("REPLACE_ME_ORG", self.git_info.organisation)

        answer = CompiledSteps()
        if step.command:
            leaf, volumes = self._compile_leaf(step, container, directory, prefix)
            answer.steps.append(leaf)
            answer.volumes = volumes

        for child in step.steps:
            compiled = self._compile_step(child, container, directory, prefix)
            answer.steps.extend(compiled.steps)
            answer.volumes = combine_volumes(answer.volumes, *compiled.volumes)
        return answer

    def _compile_leaf(
        self,
        step: PipelineStep,
        container: str,
        directory: str,
        prefix: str,
    ) -> Tuple[Container, List[Volume]]:
        if not container:
            container = DEFAULT_CONTAINER
            warn(
                self.warnings,
                "No 'agent.container' specified in the pipeline configuration "
                f"so defaulting to use: {container}",
            )
        template = self.pod_templates.template(container)
        c = template.spec.containers[0].model_copy(deep=True)
        self.step_counter += 1

        name = step.name or f"step{1 + self.step_counter}"
        c.name = f"{prefix}-{name}" if prefix else name

        c, volumes = inject(c, template.spec.volumes, self.injection)

        c.command = ["/bin/sh"]
        c.args = ["-c", replace_command_text(step.command)]
        if self.custom_image:
            c.image = self.custom_image
        c.working_dir = resolve_working_dir(directory, self.workspace)
        return c, volumes
