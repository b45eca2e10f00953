"""
Декларативный путь: ParsedPipeline -> Task на каждую стадию + Pipeline + PipelineStructure.

Tekton (v1alpha1) не умеет упорядочивать задачи сам, поэтому порядок стадий
выражается через image-ресурс temp-ordering-resource: каждая задача выдаёт его
на выходе, а следующая берёт его на вход "from" предыдущей.
"""

import posixpath
from typing import Dict, List, Optional, Tuple

from pack2task.core.config import TEMP_ORDERING_RESOURCE_NAME, WORKSPACE_ROOT
from pack2task.core.models import (
    Container,
    EnvVar,
    Inputs,
    ObjectMeta,
    Outputs,
    Pipeline,
    PipelineDeclaredResource,
    PipelineSpec,
    PipelineStructure,
    PipelineStructureStage,
    PipelineTask,
    PipelineTaskInputResource,
    PipelineTaskOutputResource,
    PipelineTaskResources,
    Task,
    TaskRef,
    TaskResource,
    TaskSpec,
)
from pack2task.exception import ValidationError
from pack2task.model import Agent, DeclarativeStep, ParsedPipeline, Stage
from pack2task.utils import to_valid_name

from .pod_templates import PodTemplateResolver
from .steps import replace_command_text, resolve_working_dir


WORKSPACE_RESOURCE = "workspace"


def _agent_defined(agent: Optional[Agent]) -> bool:
    return agent is not None and bool(agent.image or agent.label)


def validate_parsed_pipeline(parsed: ParsedPipeline) -> None:
    """Проверяет декларативный пайплайн до генерации CRD."""
    if not parsed.stages:
        raise ValidationError("Validation failed for Pipeline: no stages defined")

    seen = set()
    for stage in parsed.stages:
        name = stage.name.strip()
        if not name:
            raise ValidationError("Validation failed for Pipeline: stage without a name")
        if to_valid_name(name) in seen:
            raise ValidationError(f"Validation failed for Pipeline: duplicate stage name {name!r}")
        seen.add(to_valid_name(name))

        if not stage.steps:
            raise ValidationError(f"Validation failed for Pipeline: stage {name!r} has no steps")
        stage_has_agent = _agent_defined(stage.agent) or _agent_defined(parsed.agent)
        for step in stage.steps:
            if not step.command:
                raise ValidationError(
                    f"Validation failed for Pipeline: step in stage {name!r} has no command"
                )
            if not step.image and not stage_has_agent:
                raise ValidationError(
                    f"Validation failed for Pipeline: no agent or image for stage {name!r}"
                )


def _image_for(
    step: DeclarativeStep,
    stage: Stage,
    parsed: ParsedPipeline,
    pod_templates: PodTemplateResolver,
) -> Container:
    agent = stage.agent if _agent_defined(stage.agent) else parsed.agent
    if step.image:
        return Container(image=step.image)
    if agent.image:
        return Container(image=agent.image)
    # agent.label - имя pod template'а, берём его первый контейнер целиком
    return pod_templates.resolve(agent.label)


def _step_container(
    index: int,
    step: DeclarativeStep,
    stage: Stage,
    parsed: ParsedPipeline,
    pod_templates: PodTemplateResolver,
    workspace: str,
    environment: Dict[str, str],
) -> Container:
    c = _image_for(step, stage, parsed, pod_templates)
    c.name = to_valid_name(step.name) if step.name else f"step{index + 1}"
    c.command = ["/bin/sh"]
    c.args = ["-c", " ".join([replace_command_text(step.command), *step.args])]
    c.working_dir = resolve_working_dir(step.dir, workspace) if step.dir else workspace
    declared = {e.name for e in c.env}
    c.env = [*c.env, *[EnvVar(name=k, value=v) for k, v in environment.items() if k not in declared]]
    return c


def generate_crds(
    parsed: ParsedPipeline,
    pipeline_name: str,
    build_number: str,
    pod_templates: PodTemplateResolver,
    source_resource: str,
    labels: Optional[Dict[str, str]] = None,
    source_name: str = "source",
) -> Tuple[Pipeline, List[Task], PipelineStructure]:
    """
    Генерирует Pipeline, по Task на стадию и PipelineStructure.

    source_resource - имя git PipelineResource с исходниками,
    на него ссылается вход workspace каждой задачи.
    """
    labels = dict(labels or {})
    workspace = posixpath.join(WORKSPACE_ROOT, source_name)

    tasks: List[Task] = []
    pipeline_tasks: List[PipelineTask] = []
    structure_stages: List[PipelineStructureStage] = []

    previous: Optional[str] = None
    stage_names = [to_valid_name(s.name) for s in parsed.stages]
    for i, stage in enumerate(parsed.stages):
        stage_name = stage_names[i]
        task_name = f"{pipeline_name}-{stage_name}-{build_number}"
        environment = {**parsed.environment, **stage.environment}

        steps = [
            _step_container(j, step, stage, parsed, pod_templates, workspace, environment)
            for j, step in enumerate(stage.steps)
        ]

        inputs = Inputs(
            resources=[TaskResource(name=WORKSPACE_RESOURCE, type="git", target_path=source_name)]
        )
        if previous is not None:
            inputs.resources.append(TaskResource(name=TEMP_ORDERING_RESOURCE_NAME, type="image"))
        outputs = Outputs(resources=[TaskResource(name=TEMP_ORDERING_RESOURCE_NAME, type="image")])

        tasks.append(
            Task(
                metadata=ObjectMeta(name=task_name, labels=dict(labels)),
                spec=TaskSpec(inputs=inputs, outputs=outputs, steps=steps),
            )
        )

        task_inputs = [PipelineTaskInputResource(name=WORKSPACE_RESOURCE, resource=source_resource)]
        if previous is not None:
            task_inputs.append(
                PipelineTaskInputResource(
                    name=TEMP_ORDERING_RESOURCE_NAME,
                    resource=TEMP_ORDERING_RESOURCE_NAME,
                    from_=[previous],
                )
            )
        pipeline_tasks.append(
            PipelineTask(
                name=stage_name,
                task_ref=TaskRef(name=task_name),
                resources=PipelineTaskResources(
                    inputs=task_inputs,
                    outputs=[
                        PipelineTaskOutputResource(
                            name=TEMP_ORDERING_RESOURCE_NAME,
                            resource=TEMP_ORDERING_RESOURCE_NAME,
                        )
                    ],
                ),
            )
        )

        structure_stages.append(
            PipelineStructureStage(
                name=stage.name,
                task_ref=task_name,
                previous=parsed.stages[i - 1].name if i > 0 else None,
                next=parsed.stages[i + 1].name if i + 1 < len(parsed.stages) else None,
            )
        )
        previous = stage_name

    pipeline_full_name = f"{pipeline_name}-{build_number}"
    pipeline = Pipeline(
        metadata=ObjectMeta(name=pipeline_full_name, labels=dict(labels)),
        spec=PipelineSpec(
            resources=[
                PipelineDeclaredResource(name=source_resource, type="git"),
                PipelineDeclaredResource(name=TEMP_ORDERING_RESOURCE_NAME, type="image"),
            ],
            tasks=pipeline_tasks,
        ),
    )
    structure = PipelineStructure(
        metadata=ObjectMeta(name=pipeline_full_name),
        pipeline_ref=pipeline_full_name,
        stages=structure_stages,
    )
    return pipeline, tasks, structure
