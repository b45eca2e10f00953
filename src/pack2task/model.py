from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional, Tuple


PIPELINE_KIND_RELEASE = "release"
PIPELINE_KIND_PULL_REQUEST = "pullrequest"
PIPELINE_KIND_FEATURE = "feature"

PIPELINE_KINDS = [PIPELINE_KIND_RELEASE, PIPELINE_KIND_PULL_REQUEST, PIPELINE_KIND_FEATURE]

# Порядок стадий фиксирован: это порядок шагов в итоговом Task
LIFECYCLE_ORDER = ["setup", "setversion", "prebuild", "build", "postbuild", "promote"]


class ConfigModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PipelineStep(ConfigModel):
    """
    Узел дерева шагов build pack'а.

    Шаг с непустым command превращается ровно в один контейнер.
    Шаг с дочерними steps - группа: дети компилируются по порядку и наследуют
    container / dir родителя, если не переопределяют их сами.
    """

    name: str = ""
    command: str = ""
    dir: str = ""
    container: str = ""
    when: str = ""
    steps: List[PipelineStep] = Field(default_factory=list)


class PipelineLifecycle(ConfigModel):
    steps: List[PipelineStep] = Field(default_factory=list)


class Agent(ConfigModel):
    label: str = ""
    container: str = ""
    image: str = ""


class DeclarativeStep(ConfigModel):
    name: str = ""
    command: str = ""
    args: List[str] = Field(default_factory=list)
    dir: str = ""
    image: str = ""


class Stage(ConfigModel):
    name: str
    agent: Optional[Agent] = None
    environment: Dict[str, str] = Field(default_factory=dict)
    steps: List[DeclarativeStep] = Field(default_factory=list)


class ParsedPipeline(ConfigModel):
    """
    Полностью декларативный пайплайн: граф стадий вместо lifecycle-шагов build pack'а.
    Каждая стадия становится отдельным Task.
    """

    agent: Optional[Agent] = None
    environment: Dict[str, str] = Field(default_factory=dict)
    stages: List[Stage] = Field(default_factory=list)


class PipelineLifecycles(ConfigModel):
    setup: Optional[PipelineLifecycle] = None
    setversion: Optional[PipelineLifecycle] = Field(default=None, alias="setVersion")
    prebuild: Optional[PipelineLifecycle] = Field(default=None, alias="preBuild")
    build: Optional[PipelineLifecycle] = None
    postbuild: Optional[PipelineLifecycle] = Field(default=None, alias="postBuild")
    promote: Optional[PipelineLifecycle] = None

    pipeline: Optional[ParsedPipeline] = None

    def all(self) -> List[Tuple[str, Optional[PipelineLifecycle]]]:
        """Стадии в порядке выполнения (включая отсутствующие)."""
        return [(name, getattr(self, name)) for name in LIFECYCLE_ORDER]


class Pipelines(ConfigModel):
    pull_request: Optional[PipelineLifecycles] = Field(default=None, alias="pullRequest")
    release: Optional[PipelineLifecycles] = None
    feature: Optional[PipelineLifecycles] = None

    def get(self, kind: str) -> Optional[PipelineLifecycles]:
        if kind == PIPELINE_KIND_RELEASE:
            return self.release
        if kind == PIPELINE_KIND_PULL_REQUEST:
            return self.pull_request
        if kind == PIPELINE_KIND_FEATURE:
            return self.feature
        return None


_KIND_FIELDS = {
    PIPELINE_KIND_RELEASE: "release",
    PIPELINE_KIND_PULL_REQUEST: "pull_request",
    PIPELINE_KIND_FEATURE: "feature",
}


def kind_field(kind: str) -> str:
    """Имя поля Pipelines для вида пайплайна."""
    return _KIND_FIELDS[kind]


class PipelineConfig(ConfigModel):
    agent: Agent = Field(default_factory=Agent)
    pipelines: Pipelines = Field(default_factory=Pipelines)

    def declarative(self) -> bool:
        """True, если хотя бы один вид пайплайна задан декларативно."""
        for kind in PIPELINE_KINDS:
            lifecycles = self.pipelines.get(kind)
            if lifecycles is not None and lifecycles.pipeline is not None:
                return True
        return False


class ProjectConfig(ConfigModel):
    """Конфиг проекта (jenkins-x.yml): имя build pack'а и локальные переопределения."""

    build_pack: str = Field(default="", alias="buildPack")
    pipeline_config: Optional[PipelineConfig] = Field(default=None, alias="pipelineConfig")
