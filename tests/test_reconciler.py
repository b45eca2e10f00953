from __future__ import annotations

import pytest

from pack2task.core.models import Param
from pack2task.core.services.builders.graph import CrdGraph, GraphBuilder, build_labels
from pack2task.core.services.builders.pod_templates import PodTemplateResolver
from pack2task.core.services.builders.steps import StepCompiler
from pack2task.core.services.reconciler import InMemoryClusterClient, Reconciler, RetryPolicy
from pack2task.exception import ApplyError, StructurePersistError
from pack2task.model import ParsedPipeline

PARAMS = [Param(name="version", value="1.2.3")]


@pytest.fixture
def labels(git_info):
    return build_labels(git_info, "master")


@pytest.fixture
def builder(options, git_info, pod_templates, injection) -> GraphBuilder:
    return GraphBuilder(options, git_info, PARAMS, injection, PodTemplateResolver(pod_templates), revision="v1.2.3")


@pytest.fixture
def graph(builder, git_info, pod_templates, injection, build_pack, labels) -> CrdGraph:
    compiled = StepCompiler(PodTemplateResolver(pod_templates), injection, git_info=git_info).compile(
        build_pack, "maven", "release"
    )
    return builder.build_from_steps(compiled, labels)


@pytest.fixture
def declarative_graph(builder) -> CrdGraph:
    parsed = ParsedPipeline.model_validate(
        {
            "agent": {"image": "maven:3"},
            "stages": [
                {"name": "build", "steps": [{"command": "mvn package"}]},
                {"name": "test", "steps": [{"command": "mvn test"}]},
            ],
        }
    )
    return builder.build_declarative(parsed, {})


def test_no_apply_makes_no_calls_but_fills_results(graph, labels) -> None:
    cluster = InMemoryClusterClient()

    results = Reconciler(cluster, "jx", no_apply=True).apply(graph, PARAMS, labels)

    assert cluster.calls == []
    assert results.pipeline_run.metadata.name == "acme-demo-master"
    assert results.tasks[0].metadata.namespace == "jx"
    assert results.pipeline.kind == "Pipeline"
    assert results.pipeline.api_version == "tekton.dev/v1alpha1"


def test_no_apply_does_not_need_a_client(graph, labels) -> None:
    results = Reconciler(None, "jx", no_apply=True).apply(graph, PARAMS, labels)

    assert results.pipeline_run is not None


def test_client_is_required_when_applying() -> None:
    with pytest.raises(ApplyError, match="cluster client is required"):
        Reconciler(None, "jx")


def test_objects_are_applied_in_dependency_order(graph, labels, cluster, fast_retry) -> None:
    Reconciler(cluster, "jx", retry=fast_retry).apply(graph, PARAMS, labels)

    assert [(verb, kind) for verb, kind, _ in cluster.calls] == [
        ("apply", "PipelineResource"),
        ("apply", "Task"),
        ("apply", "Pipeline"),
        ("create", "PipelineRun"),
    ]


def test_run_is_owned_by_the_applied_pipeline(graph, labels, cluster, fast_retry) -> None:
    results = Reconciler(cluster, "jx", retry=fast_retry, service_account="builder", trigger="pr").apply(
        graph, PARAMS, labels
    )

    stored = cluster.get("Pipeline", "jx", "acme-demo-master")
    run = results.pipeline_run
    owner = run.metadata.owner_references[0]
    assert (owner.kind, owner.name, owner.uid) == ("Pipeline", "acme-demo-master", stored.metadata.uid)
    assert owner.uid
    assert run.metadata.labels == labels
    assert run.spec.service_account == "builder"
    assert run.spec.trigger.type == "pr"
    assert run.spec.pipeline_ref.name == "acme-demo-master"
    assert run.spec.params == PARAMS
    assert [(b.name, b.resource_ref.name) for b in run.spec.resources] == [("acme-demo-master", "acme-demo-master")]
    assert cluster.get("PipelineRun", "jx", run.metadata.name) is not None


def test_pipeline_gets_the_run_labels(graph, cluster, fast_retry) -> None:
    Reconciler(cluster, "jx", retry=fast_retry).apply(graph, PARAMS, {"team": "core"})

    assert cluster.get("Pipeline", "jx", "acme-demo-master").metadata.labels["team"] == "core"


def test_upserts_are_idempotent(graph, labels, fast_retry) -> None:
    cluster = InMemoryClusterClient()
    Reconciler(cluster, "jx", retry=fast_retry).apply(graph, PARAMS, labels)
    uid = cluster.get("Task", "jx", "acme-demo-master").metadata.uid

    cluster.objects = {k: v for k, v in cluster.objects.items() if k[0] != "PipelineRun"}
    Reconciler(cluster, "jx", retry=fast_retry).apply(graph, PARAMS, labels)

    assert len(cluster.list_kind("Task")) == 1
    assert len(cluster.list_kind("PipelineResource")) == 1
    assert cluster.get("Task", "jx", "acme-demo-master").metadata.uid == uid


def test_task_failure_is_wrapped_with_context(graph, labels, fast_retry) -> None:
    cluster = InMemoryClusterClient(fail_on={"Task": -1})

    with pytest.raises(ApplyError, match="failed to create/update the task acme-demo-master in namespace jx"):
        Reconciler(cluster, "jx", retry=fast_retry).apply(graph, PARAMS, labels)


def test_run_creation_is_retried_until_it_succeeds(graph, labels, clock, fast_retry) -> None:
    cluster = InMemoryClusterClient(fail_on={"PipelineRun": 2})

    results = Reconciler(cluster, "jx", retry=fast_retry).apply(graph, PARAMS, labels)

    assert results.pipeline_run is not None
    assert clock.sleeps == [1, 1]
    assert [kind for _, kind, _ in cluster.calls].count("PipelineRun") == 3


def test_run_creation_gives_up_after_the_budget(graph, labels, clock, fast_retry) -> None:
    cluster = InMemoryClusterClient(fail_on={"PipelineRun": -1})

    with pytest.raises(ApplyError, match="gave up after 6 attempt"):
        Reconciler(cluster, "jx", retry=fast_retry).apply(graph, PARAMS, labels)

    assert clock.now == 5


def test_structure_is_persisted_after_the_run(declarative_graph, cluster, fast_retry) -> None:
    results = Reconciler(cluster, "jx", retry=fast_retry).apply(declarative_graph, PARAMS, {})

    assert [kind for _, kind, _ in cluster.calls][-2:] == ["PipelineRun", "PipelineStructure"]
    structure = results.structure
    assert structure.metadata.name == results.pipeline_run.metadata.name
    assert structure.pipeline_run_ref == results.pipeline_run.metadata.name
    assert structure.pipeline_ref == "aster-1"
    assert structure.metadata.owner_references[0].name == "aster-1"


def test_structure_failure_is_fatal_and_keeps_the_run(declarative_graph, fast_retry) -> None:
    cluster = InMemoryClusterClient(fail_on={"PipelineStructure": -1})

    with pytest.raises(StructurePersistError, match="PipelineStructure"):
        Reconciler(cluster, "jx", retry=fast_retry).apply(declarative_graph, PARAMS, {})

    assert cluster.get("PipelineRun", "jx", "aster-1") is not None


def test_retry_policy_backs_off(clock) -> None:
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 4:
            raise ApplyError("not yet")
        return "ok"

    policy = RetryPolicy(duration=60, interval=1, backoff=2, max_interval=3, sleep=clock.sleep, clock=clock)

    assert policy.call(flaky, "flaky") == "ok"
    assert clock.sleeps == [1, 2, 3]


def test_retry_policy_with_no_budget_tries_once(clock) -> None:
    def broken():
        raise ApplyError("boom")

    policy = RetryPolicy(duration=0, sleep=clock.sleep, clock=clock)

    with pytest.raises(ApplyError, match="gave up after 1 attempt"):
        policy.call(broken, "broken")
    assert clock.sleeps == []
