from __future__ import annotations

import dataclasses

import pytest

from pack2task.core.models import (
    GitRepository,
    ObjectMeta,
    Param,
    Pipeline,
    PipelineSpec,
    PipelineTask,
    PipelineTaskInputResource,
    PipelineTaskResources,
    TaskOptions,
    TaskRef,
)
from pack2task.core.services.builders.graph import (
    GraphBuilder,
    build_labels,
    pipeline_resource_name,
    validate_pipeline,
)
from pack2task.core.services.builders.pod_templates import PodTemplateResolver
from pack2task.core.services.builders.steps import StepCompiler
from pack2task.exception import ConfigError, LabelFormatError, ValidationError
from pack2task.model import ParsedPipeline

PARAMS = [Param(name="version", value="1.2.3")]


def _builder(options, git_info, pod_templates, injection, revision="v1.2.3") -> GraphBuilder:
    return GraphBuilder(
        options,
        git_info,
        PARAMS,
        injection,
        PodTemplateResolver(pod_templates),
        revision=revision,
    )


def _parsed(stages) -> ParsedPipeline:
    return ParsedPipeline.model_validate({"agent": {"image": "maven:3"}, "environment": {"CI": "true"}, "stages": stages})


def test_resource_name_is_a_valid_kubernetes_name(git_info: GitRepository) -> None:
    assert pipeline_resource_name(git_info, "feature/Foo_Bar", "") == "acme-demo-feature-foo-bar"
    assert pipeline_resource_name(git_info, "master", "lint") == "acme-demo-master-lint"


def test_labels_include_repository_and_custom_values(git_info: GitRepository) -> None:
    labels = build_labels(git_info, "master", ["team=core"], from_yaml=True)

    assert labels == {
        "owner": "acme",
        "repo": "demo",
        "branch": "master",
        "jenkins.io/pipelineFromYaml": "true",
        "team": "core",
    }


@pytest.mark.parametrize("label", ["team", "a=b=c"])
def test_malformed_label_is_rejected(git_info: GitRepository, label: str) -> None:
    with pytest.raises(LabelFormatError):
        build_labels(git_info, "master", [label])


def test_build_pack_graph_wraps_steps_in_one_task(
    options: TaskOptions, git_info, pod_templates, injection, build_pack
) -> None:
    compiled = StepCompiler(PodTemplateResolver(pod_templates), injection, git_info=git_info).compile(
        build_pack, "maven", "release"
    )
    labels = build_labels(git_info, "master")

    graph = _builder(options, git_info, pod_templates, injection).build_from_steps(compiled, labels)

    task = graph.tasks[0]
    assert len(graph.tasks) == 1
    assert task.metadata.name == "acme-demo-master"
    assert task.metadata.labels == labels
    assert task.spec.steps == compiled.steps
    assert [(p.name, p.description) for p in task.spec.inputs.params] == [
        ("version", "the version number for this release which is used as a tag on docker images")
    ]
    assert [(r.name, r.type) for r in task.spec.inputs.resources] == [("source", "git")]

    resource = graph.resources[0]
    assert resource.metadata.name == "acme-demo-master"
    assert [(p.name, p.value) for p in resource.spec.params] == [
        ("revision", "v1.2.3"),
        ("url", "https://github.com/acme/demo.git"),
    ]

    pt = graph.pipeline.spec.tasks[0]
    assert pt.name == "build"
    assert pt.task_ref.name == task.metadata.name
    assert pt.params == PARAMS
    assert pt.resources.inputs[0].resource == resource.metadata.name
    assert graph.structure is None


def test_build_pack_graph_without_clone_url_has_no_resources(options, pod_templates, injection, build_pack) -> None:
    git_info = GitRepository(organisation="acme", name="demo")
    compiled = StepCompiler(PodTemplateResolver(pod_templates), injection, git_info=git_info).compile(
        build_pack, "maven", "release"
    )

    graph = _builder(options, git_info, pod_templates, injection).build_from_steps(compiled, {})

    assert graph.resources == []
    assert graph.pipeline.spec.resources == []


def test_declarative_graph_has_a_task_per_stage(options, git_info, pod_templates, injection) -> None:
    parsed = _parsed(
        [
            {"name": "Build", "steps": [{"name": "compile", "command": "mvn", "args": ["package"]}]},
            {"name": "Test", "environment": {"CI": "false"}, "steps": [{"command": "mvn test", "dir": "./svc"}]},
        ]
    )
    labels = build_labels(git_info, "master", from_yaml=True)

    graph = _builder(options, git_info, pod_templates, injection).build_declarative(parsed, labels)

    # имя пайплайна укорачивается до последних пяти символов
    assert [t.metadata.name for t in graph.tasks] == ["aster-build-1", "aster-test-1"]
    assert graph.pipeline.metadata.name == "aster-1"
    assert [r.metadata.name for r in graph.resources] == ["aster", "temp-ordering-resource"]
    assert [r.type for r in graph.pipeline.spec.resources] == ["git", "image"]

    build, test = graph.tasks
    assert build.spec.steps[0].name == "compile"
    assert build.spec.steps[0].args == ["-c", "mvn package"]
    assert build.spec.steps[0].working_dir == "/workspace/source"
    assert test.spec.steps[0].name == "step1"
    assert test.spec.steps[0].working_dir == "/workspace/source/svc"
    env = {e.name: e.value for e in test.spec.steps[0].env}
    assert env["CI"] == "false"
    assert env["VERSION"] == "${inputs.params.version}"
    assert [v.name for v in test.spec.volumes] == ["podinfo"]
    assert [p.name for p in test.spec.inputs.params] == ["version"]

    first, second = graph.pipeline.spec.tasks
    assert first.params == PARAMS and second.params == PARAMS
    assert second.resources.inputs[1].from_ == ["build"]

    stages = graph.structure.stages
    assert [(s.name, s.previous, s.next) for s in stages] == [("Build", None, "Test"), ("Test", "Build", None)]


def test_declarative_graph_requires_a_clone_url(options, pod_templates, injection) -> None:
    git_info = GitRepository(organisation="acme", name="demo")
    parsed = _parsed([{"name": "build", "steps": [{"command": "make"}]}])

    with pytest.raises(ConfigError, match="clone URL"):
        _builder(options, git_info, pod_templates, injection).build_declarative(parsed, {})


@pytest.mark.parametrize(
    "stages,fragment",
    [
        ([], "no stages"),
        ([{"name": "a", "steps": [{"command": "x"}]}, {"name": "A", "steps": [{"command": "y"}]}], "duplicate stage"),
        ([{"name": "a", "steps": []}], "has no steps"),
        ([{"name": "a", "steps": [{"name": "empty"}]}], "has no command"),
    ],
)
def test_invalid_declarative_pipeline_is_rejected(
    options, git_info, pod_templates, injection, stages, fragment
) -> None:
    with pytest.raises(ValidationError, match=fragment):
        _builder(options, git_info, pod_templates, injection).build_declarative(_parsed(stages), {})


def test_declarative_stage_without_image_or_agent_is_rejected(options, git_info, pod_templates, injection) -> None:
    parsed = ParsedPipeline.model_validate({"stages": [{"name": "a", "steps": [{"command": "make"}]}]})

    with pytest.raises(ValidationError, match="no agent or image"):
        _builder(options, git_info, pod_templates, injection).build_declarative(parsed, {})


def test_pipeline_referencing_unknown_task_fails_validation() -> None:
    pipeline = Pipeline(
        metadata=ObjectMeta(name="demo"),
        spec=PipelineSpec(tasks=[PipelineTask(name="build", task_ref=TaskRef(name="missing"))]),
    )

    with pytest.raises(ValidationError, match="unknown Task missing"):
        validate_pipeline(pipeline, tasks=[])


def test_pipeline_using_undeclared_resource_fails_validation() -> None:
    pipeline = Pipeline(
        metadata=ObjectMeta(name="demo"),
        spec=PipelineSpec(
            tasks=[
                PipelineTask(
                    name="build",
                    task_ref=TaskRef(name="build"),
                    resources=PipelineTaskResources(
                        inputs=[PipelineTaskInputResource(name="source", resource="nope")]
                    ),
                )
            ]
        ),
    )

    with pytest.raises(ValidationError, match="undeclared resource nope"):
        validate_pipeline(pipeline)


def test_step_env_follows_the_builder_params(options, git_info, pod_templates, injection) -> None:
    stale = dataclasses.replace(injection, params=(Param(name="preview_version", value="0.0.0"),))
    parsed = _parsed([{"name": "build", "steps": [{"command": "make"}]}])

    graph = _builder(options, git_info, pod_templates, stale).build_declarative(parsed, {})

    task = graph.tasks[0]
    env = {e.name: e.value for e in task.spec.steps[0].env}
    assert [p.name for p in task.spec.inputs.params] == ["version"]
    assert env["VERSION"] == "${inputs.params.version}"
    assert "PREVIEW_VERSION" not in env
