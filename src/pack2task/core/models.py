from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional

from .config import (
    NAMESPACE,
    RETRY_SECONDS,
    SERVICE_ACCOUNT,
    STRUCTURE_API_VERSION,
    TEKTON_API_VERSION,
)


class CrdModel(BaseModel):
    """
    База для всех Kubernetes-объектов.
    Поля в python-стиле, в YAML/JSON уходят в camelCase.
    Неизвестные поля (например, securityContext из pod template) сохраняются как есть.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# --- Базовые k8s-типы ---

class OwnerReference(CrdModel):
    api_version: str
    kind: str
    name: str
    uid: str = ""


class ObjectMeta(CrdModel):
    name: str = ""
    namespace: Optional[str] = None
    uid: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    owner_references: List[OwnerReference] = Field(default_factory=list)


class EnvVar(CrdModel):
    name: str
    value: str = ""


class VolumeMount(CrdModel):
    name: str
    mount_path: str
    read_only: bool = False


class DownwardAPIVolumeFile(CrdModel):
    path: str
    field_ref: Dict[str, str] = Field(default_factory=dict)


class DownwardAPIVolumeSource(CrdModel):
    items: List[DownwardAPIVolumeFile] = Field(default_factory=list)


class Volume(CrdModel):
    name: str
    downward_api: Optional[DownwardAPIVolumeSource] = Field(default=None, alias="downwardAPI")


class Container(CrdModel):
    """Один шаг Task (CompiledStep): образ, команда, рабочая директория, env, mounts."""

    name: str = ""
    image: str = ""
    command: List[str] = Field(default_factory=list)
    args: List[str] = Field(default_factory=list)
    working_dir: str = ""
    env: List[EnvVar] = Field(default_factory=list)
    volume_mounts: List[VolumeMount] = Field(default_factory=list)


class PodSpec(CrdModel):
    containers: List[Container] = Field(default_factory=list)
    volumes: List[Volume] = Field(default_factory=list)


class PodTemplate(CrdModel):
    """Pod из configmap'а с pod template'ами: важен только spec."""

    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: PodSpec = Field(default_factory=PodSpec)


# --- Tekton ---

class Param(CrdModel):
    name: str
    value: str = ""


class TaskParam(CrdModel):
    name: str
    description: str = ""
    default: str = ""


class TaskResource(CrdModel):
    name: str
    type: str
    target_path: str = ""


class Inputs(CrdModel):
    resources: List[TaskResource] = Field(default_factory=list)
    params: List[TaskParam] = Field(default_factory=list)


class Outputs(CrdModel):
    resources: List[TaskResource] = Field(default_factory=list)


class TaskSpec(CrdModel):
    inputs: Optional[Inputs] = None
    outputs: Optional[Outputs] = None
    steps: List[Container] = Field(default_factory=list)
    volumes: List[Volume] = Field(default_factory=list)


class Task(CrdModel):
    api_version: str = TEKTON_API_VERSION
    kind: str = "Task"
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: TaskSpec = Field(default_factory=TaskSpec)


class TaskRef(CrdModel):
    name: str
    kind: str = "Task"
    api_version: str = TEKTON_API_VERSION


class PipelineTaskInputResource(CrdModel):
    name: str
    resource: str
    from_: List[str] = Field(default_factory=list, alias="from")


class PipelineTaskOutputResource(CrdModel):
    name: str
    resource: str


class PipelineTaskResources(CrdModel):
    inputs: List[PipelineTaskInputResource] = Field(default_factory=list)
    outputs: List[PipelineTaskOutputResource] = Field(default_factory=list)


class PipelineTask(CrdModel):
    name: str
    task_ref: TaskRef
    resources: Optional[PipelineTaskResources] = None
    params: List[Param] = Field(default_factory=list)


class PipelineDeclaredResource(CrdModel):
    name: str
    type: str


class PipelineSpec(CrdModel):
    resources: List[PipelineDeclaredResource] = Field(default_factory=list)
    tasks: List[PipelineTask] = Field(default_factory=list)


class Pipeline(CrdModel):
    # apiVersion / kind проставляет Reconciler, если они пустые
    api_version: str = ""
    kind: str = ""
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: PipelineSpec = Field(default_factory=PipelineSpec)


class PipelineResourceSpec(CrdModel):
    type: str
    params: List[Param] = Field(default_factory=list)


class PipelineResource(CrdModel):
    api_version: str = TEKTON_API_VERSION
    kind: str = "PipelineResource"
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: PipelineResourceSpec


class PipelineResourceRef(CrdModel):
    name: str
    api_version: str = TEKTON_API_VERSION


class PipelineResourceBinding(CrdModel):
    name: str
    resource_ref: PipelineResourceRef


class PipelineRef(CrdModel):
    name: str
    api_version: str = TEKTON_API_VERSION


class PipelineTrigger(CrdModel):
    type: str = "manual"


class PipelineRunSpec(CrdModel):
    service_account: str = ""
    trigger: PipelineTrigger = Field(default_factory=PipelineTrigger)
    pipeline_ref: PipelineRef
    resources: List[PipelineResourceBinding] = Field(default_factory=list)
    params: List[Param] = Field(default_factory=list)


class PipelineRun(CrdModel):
    api_version: str = TEKTON_API_VERSION
    kind: str = "PipelineRun"
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: PipelineRunSpec


class PipelineStructureStage(CrdModel):
    name: str
    task_ref: Optional[str] = None
    depth: int = 0
    previous: Optional[str] = None
    next: Optional[str] = None


class PipelineStructure(CrdModel):
    """Побочная запись: связывает PipelineRun с исходным декларативным пайплайном."""

    api_version: str = STRUCTURE_API_VERSION
    kind: str = "PipelineStructure"
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    pipeline_ref: Optional[str] = None
    pipeline_run_ref: Optional[str] = None
    stages: List[PipelineStructureStage] = Field(default_factory=list)


# --- Входные данные и результаты ---

class GitRepository(BaseModel):
    """Идентичность git-репозитория: хост, организация, имя, clone URL."""

    host: str = ""
    organisation: str = ""
    name: str = ""
    clone_url: str = ""

    def https_url(self) -> str:
        if self.clone_url.startswith("https://") or self.clone_url.startswith("http://"):
            return self.clone_url
        if self.host and self.organisation and self.name:
            return f"https://{self.host}/{self.organisation}/{self.name}.git"
        return ""


class TaskOptions(BaseModel):
    """Параметры одного запуска (зеркало флагов командной строки)."""

    pack: str = ""
    dir: str = ""
    build_pack_url: str = ""
    build_pack_ref: str = ""
    pipeline_kind: str = "release"
    context: str = ""
    custom_labels: List[str] = Field(default_factory=list)
    no_apply: bool = False
    trigger: str = "manual"
    target_path: str = ""
    source_name: str = "source"
    custom_image: str = ""
    docker_registry: str = ""
    clone_git_url: str = ""
    branch: str = ""
    revision: str = ""
    pr_number: str = ""
    delete_temp_dir: bool = False
    view_steps: bool = False
    no_set_version: bool = False
    retry_duration: float = RETRY_SECONDS

    service_account: str = SERVICE_ACCOUNT
    namespace: str = NAMESPACE
    output_dir: str = ""
    build_number: str = "1"


class ObjectReference(BaseModel):
    api_version: str
    kind: str
    name: str
    namespace: Optional[str] = None


class TaskResults(BaseModel):
    """Всё, что сгенерировано (и, если не no-apply, применено) за один запуск."""

    pipeline: Optional[Pipeline] = None
    tasks: List[Task] = Field(default_factory=list)
    resources: List[PipelineResource] = Field(default_factory=list)
    pipeline_run: Optional[PipelineRun] = None
    structure: Optional[PipelineStructure] = None
    pipeline_params: List[Param] = Field(default_factory=list)

    missing_pod_templates: List[str] = Field(default_factory=list)
    logs: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    def object_references(self) -> List[ObjectReference]:
        answer: List[ObjectReference] = []
        objects: List[CrdModel] = list(self.tasks)
        if self.pipeline is not None:
            objects.append(self.pipeline)
        if self.pipeline_run is not None:
            objects.append(self.pipeline_run)
        for obj in objects:
            answer.append(
                ObjectReference(
                    api_version=obj.api_version,
                    kind=obj.kind,
                    name=obj.metadata.name,
                    namespace=obj.metadata.namespace,
                )
            )
        return answer
