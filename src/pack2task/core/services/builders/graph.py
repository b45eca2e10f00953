from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional

from pack2task.core.config import (
    LABEL_PIPELINE_FROM_YAML,
    TEMP_ORDERING_RESOURCE_IMAGE,
    TEMP_ORDERING_RESOURCE_NAME,
)
from pack2task.core.models import (
    GitRepository,
    Inputs,
    ObjectMeta,
    Param,
    Pipeline,
    PipelineDeclaredResource,
    PipelineResource,
    PipelineResourceSpec,
    PipelineSpec,
    PipelineStructure,
    PipelineTask,
    PipelineTaskInputResource,
    PipelineTaskResources,
    Task,
    TaskOptions,
    TaskParam,
    TaskRef,
    TaskResource,
    TaskSpec,
)
from pack2task.exception import ConfigError, LabelFormatError, ValidationError
from pack2task.model import ParsedPipeline
from pack2task.utils import info, log, to_valid_name

from .declarative import generate_crds, validate_parsed_pipeline
from .injector import InjectionContext, combine_volumes, inject
from .pod_templates import PodTemplateResolver
from .steps import CompiledSteps


PARAM_DESCRIPTIONS = {
    "version": "the version number for this release which is used as a tag on docker images",
    "preview_version": "the version number for this preview which is used as a tag on docker images",
}


@dataclass
class CrdGraph:
    """Общий результат обоих путей генерации: то, что уходит в Reconciler."""

    pipeline: Pipeline
    tasks: List[Task] = field(default_factory=list)
    resources: List[PipelineResource] = field(default_factory=list)
    structure: Optional[PipelineStructure] = None


def pipeline_resource_name(git_info: Optional[GitRepository], branch: str, context: str = "") -> str:
    parts: List[str] = []
    if git_info is not None:
        parts.extend([git_info.organisation, git_info.name])
    parts.extend([branch, context])
    return to_valid_name("-".join(p for p in parts if p))


def build_labels(
    git_info: Optional[GitRepository],
    branch: str,
    custom_labels: Iterable[str] = (),
    from_yaml: bool = False,
    logs: Optional[List[str]] = None,
) -> Dict[str, str]:
    logs = logs if logs is not None else []
    labels: Dict[str, str] = {}
    if git_info is not None:
        labels["owner"] = git_info.organisation
        labels["repo"] = git_info.name
    labels["branch"] = branch
    if from_yaml:
        labels[LABEL_PIPELINE_FROM_YAML] = "true"

    for custom in custom_labels:
        parts = custom.split("=")
        if len(parts) != 2:
            raise LabelFormatError(custom, len(parts))
        log(logs, f"Добавлен label {parts[0]} : {parts[1]}")
        labels[parts[0]] = parts[1]
    return labels


def task_params(params: Iterable[Param]) -> List[TaskParam]:
    return [
        TaskParam(name=p.name, description=PARAM_DESCRIPTIONS.get(p.name, ""), default="")
        for p in params
    ]


def source_repo_resource(
    name: str,
    git_info: Optional[GitRepository],
    revision: str,
    from_yaml: bool = False,
) -> Optional[PipelineResource]:
    """git PipelineResource с исходниками; None, если у репозитория нет URL."""
    if git_info is None:
        return None
    git_url = git_info.https_url()
    if not git_url:
        return None
    resource = PipelineResource(
        metadata=ObjectMeta(name=name),
        spec=PipelineResourceSpec(
            type="git",
            params=[Param(name="revision", value=revision), Param(name="url", value=git_url)],
        ),
    )
    if from_yaml:
        resource.metadata.labels = {LABEL_PIPELINE_FROM_YAML: "true"}
    return resource


def temp_ordering_resource() -> PipelineResource:
    """
    Маленький image-ресурс, через который выражается порядок задач:
    сам Tekton порядок задач в пайплайне не гарантирует.
    """
    return PipelineResource(
        metadata=ObjectMeta(
            name=TEMP_ORDERING_RESOURCE_NAME,
            labels={LABEL_PIPELINE_FROM_YAML: "true"},
        ),
        spec=PipelineResourceSpec(
            type="image",
            params=[Param(name="url", value=TEMP_ORDERING_RESOURCE_IMAGE)],
        ),
    )


def _unique(names: List[str], what: str, owner: str) -> None:
    seen = set()
    for name in names:
        if name in seen:
            raise ValidationError(f"Validation failed for {owner}: duplicate {what} {name!r}")
        seen.add(name)


def validate_task(task: Task) -> None:
    name = task.metadata.name
    if not name:
        raise ValidationError("Validation failed for generated Task: missing metadata.name")
    owner = f"generated Task: {name}"
    if not task.spec.steps:
        raise ValidationError(f"Validation failed for {owner}: no steps")
    for step in task.spec.steps:
        if not step.name:
            raise ValidationError(f"Validation failed for {owner}: step without a name")
        if not step.image:
            raise ValidationError(f"Validation failed for {owner}: step {step.name} has no image")
        if not step.command and not step.args:
            raise ValidationError(f"Validation failed for {owner}: step {step.name} has no command")
    _unique([s.name for s in task.spec.steps], "step", owner)
    if task.spec.inputs is not None:
        _unique([r.name for r in task.spec.inputs.resources], "input resource", owner)
        _unique([p.name for p in task.spec.inputs.params], "param", owner)
    _unique([v.name for v in task.spec.volumes], "volume", owner)


def validate_pipeline(pipeline: Pipeline, tasks: Optional[List[Task]] = None) -> None:
    """
    Структурная проверка Pipeline. Если переданы tasks, дополнительно проверяется,
    что каждый taskRef указывает на задачу из того же прохода генерации.
    """
    name = pipeline.metadata.name
    if not name:
        raise ValidationError("Validation failed for generated Pipeline: missing metadata.name")
    owner = f"generated Pipeline: {name}"
    if not pipeline.spec.tasks:
        raise ValidationError(f"Validation failed for {owner}: no tasks")

    _unique([t.name for t in pipeline.spec.tasks], "pipeline task", owner)
    _unique([r.name for r in pipeline.spec.resources], "resource", owner)
    declared = {r.name for r in pipeline.spec.resources}
    task_names = {t.metadata.name for t in tasks} if tasks is not None else None

    earlier: List[str] = []
    for pt in pipeline.spec.tasks:
        if not pt.name or not pt.task_ref.name:
            raise ValidationError(f"Validation failed for {owner}: pipeline task without a name or taskRef")
        if task_names is not None and pt.task_ref.name not in task_names:
            raise ValidationError(
                f"Validation failed for {owner}: task {pt.name} references unknown Task {pt.task_ref.name}"
            )
        _unique([p.name for p in pt.params], "param", f"{owner} task {pt.name}")
        if pt.resources is not None:
            for r in [*pt.resources.inputs, *pt.resources.outputs]:
                if r.resource not in declared:
                    raise ValidationError(
                        f"Validation failed for {owner}: task {pt.name} uses undeclared resource {r.resource}"
                    )
            for r in pt.resources.inputs:
                for previous in r.from_:
                    if previous not in earlier:
                        raise ValidationError(
                            f"Validation failed for {owner}: task {pt.name} takes {r.name} from unknown task {previous}"
                        )
        earlier.append(pt.name)


def validate_graph(graph: CrdGraph) -> None:
    for task in graph.tasks:
        validate_task(task)
    validate_pipeline(graph.pipeline, graph.tasks)
    resource_names = [r.metadata.name for r in graph.resources]
    _unique(resource_names, "resource", "generated PipelineResources")
    for declared in graph.pipeline.spec.resources:
        if declared.name not in resource_names:
            raise ValidationError(
                f"Validation failed for generated Pipeline: resource {declared.name} is not generated"
            )


class GraphBuilder:
    """
    Собирает граф CRD (ресурсы, задачи, пайплайн, структура) для одного запуска.

    build_from_steps - путь build pack'а: одна Task из скомпилированных шагов,
                       обёрнутая в Pipeline из одной задачи "build";
    build_declarative - декларативный путь: Task на каждую стадию.
    Оба пути отдают CrdGraph с одним и тем же набором параметров.
    """

    def __init__(
        self,
        options: TaskOptions,
        git_info: Optional[GitRepository],
        params: List[Param],
        injection: InjectionContext,
        pod_templates: PodTemplateResolver,
        revision: str = "",
        logs: Optional[List[str]] = None,
    ) -> None:
        self.options = options
        self.git_info = git_info
        self.params = list(params)
        # env шагов строится из тех же параметров, что объявлены у задач
        self.injection = replace(injection, params=tuple(self.params))
        self.pod_templates = pod_templates
        self.revision = revision
        self.logs: List[str] = logs if logs is not None else []

    @property
    def branch(self) -> str:
        return self.options.branch

    def _inputs(self) -> Inputs:
        return Inputs(params=task_params(self.params))

    def build_from_steps(self, compiled: CompiledSteps, labels: Dict[str, str]) -> CrdGraph:
        name = pipeline_resource_name(self.git_info, self.branch, self.options.context)
        task = Task(
            metadata=ObjectMeta(name=name, labels=dict(labels)),
            spec=TaskSpec(
                steps=list(compiled.steps),
                volumes=list(compiled.volumes),
                inputs=self._inputs(),
            ),
        )
        task.spec.inputs.resources.append(
            TaskResource(name=self.options.source_name, type="git", target_path=self.options.target_path)
        )

        org = self.git_info.organisation if self.git_info is not None else ""
        repo = self.git_info.name if self.git_info is not None else ""
        resource_name = to_valid_name(f"{org}-{repo}-{self.branch}")
        resource = source_repo_resource(resource_name, self.git_info, self.revision)

        resources: List[PipelineResource] = []
        declared: List[PipelineDeclaredResource] = []
        task_inputs: List[PipelineTaskInputResource] = []
        if resource is not None:
            resources.append(resource)
            declared.append(PipelineDeclaredResource(name=resource.metadata.name, type=resource.spec.type))
            task_inputs.append(
                PipelineTaskInputResource(name=self.options.source_name, resource=resource.metadata.name)
            )

        pipeline = Pipeline(
            metadata=ObjectMeta(name=name, labels=dict(labels)),
            spec=PipelineSpec(
                resources=declared,
                tasks=[
                    PipelineTask(
                        name="build",
                        task_ref=TaskRef(name=task.metadata.name, api_version=task.api_version),
                        resources=PipelineTaskResources(inputs=task_inputs),
                        params=list(self.params),
                    )
                ],
            ),
        )
        graph = CrdGraph(pipeline=pipeline, tasks=[task], resources=resources)
        validate_graph(graph)
        log(self.logs, f"Сгенерирована Task {info(name)} из {len(task.spec.steps)} шагов")
        return graph

    def build_declarative(self, parsed: ParsedPipeline, labels: Dict[str, str]) -> CrdGraph:
        validate_parsed_pipeline(parsed)

        name = pipeline_resource_name(self.git_info, self.branch, self.options.context)
        # имя укорачиваем до последних 5 символов
        name = name[-5:].strip("-") or name

        source = source_repo_resource(name, self.git_info, self.revision, from_yaml=True)
        if source is None:
            raise ConfigError("declarative pipelines need a git repository with a clone URL")

        pipeline, tasks, structure = generate_crds(
            parsed,
            name,
            self.options.build_number,
            self.pod_templates,
            source_resource=source.metadata.name,
            labels=labels,
            source_name=self.options.source_name,
        )
        for pt in pipeline.spec.tasks:
            if not pt.params:
                pt.params = list(self.params)

        for task in tasks:
            volumes = list(task.spec.volumes)
            steps = []
            for step in task.spec.steps:
                step, volumes = inject(step, volumes, self.injection)
                steps.append(step)
            task.spec.steps = steps
            task.spec.volumes = combine_volumes(volumes)
            if task.spec.inputs is None:
                task.spec.inputs = self._inputs()
            else:
                task.spec.inputs.params = task_params(self.params)

        graph = CrdGraph(
            pipeline=pipeline,
            tasks=tasks,
            resources=[source, temp_ordering_resource()],
            structure=structure,
        )
        validate_graph(graph)
        log(self.logs, f"Сгенерирован декларативный Pipeline {info(pipeline.metadata.name)} из {len(tasks)} задач")
        return graph
