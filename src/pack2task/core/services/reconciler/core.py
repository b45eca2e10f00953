import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, TypeVar

from pack2task.core.config import RETRY_INTERVAL, RETRY_SECONDS, TEKTON_API_VERSION
from pack2task.core.models import (
    ObjectMeta,
    OwnerReference,
    Param,
    Pipeline,
    PipelineRef,
    PipelineResourceBinding,
    PipelineResourceRef,
    PipelineRun,
    PipelineRunSpec,
    PipelineStructure,
    PipelineTrigger,
    TaskResults,
)
from pack2task.core.services.builders.graph import CrdGraph
from pack2task.exception import ApplyError, StructurePersistError
from pack2task.utils import info, log, merge_maps

from .client import ClusterClient

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """
    Повторяет вызов, пока он не выполнится или не истечёт duration секунд.
    interval умножается на backoff после каждой неудачи (1.0 - фиксированный интервал).
    """

    duration: float = RETRY_SECONDS
    interval: float = RETRY_INTERVAL
    backoff: float = 1.0
    max_interval: float = 10.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    def call(self, fn: Callable[[], T], what: str) -> T:
        deadline = self.clock() + self.duration
        interval = self.interval
        attempts = 0
        while True:
            attempts += 1
            try:
                return fn()
            except ApplyError as e:
                last = e
            remaining = deadline - self.clock()
            if remaining <= 0:
                raise ApplyError(
                    f"{what}: gave up after {attempts} attempt(s) in {self.duration}s: {last.description}"
                ) from last
            self.sleep(min(interval, remaining))
            interval = min(interval * self.backoff, self.max_interval)


def owner_reference(pipeline: Pipeline) -> OwnerReference:
    return OwnerReference(
        api_version=TEKTON_API_VERSION,
        kind="Pipeline",
        name=pipeline.metadata.name,
        uid=pipeline.metadata.uid or "",
    )


def _default_type_meta(pipeline: Pipeline) -> None:
    if not pipeline.api_version:
        pipeline.api_version = TEKTON_API_VERSION
    if not pipeline.kind:
        pipeline.kind = "Pipeline"


class Reconciler:
    """
    Применяет граф к кластеру: create-or-update ресурсов, задач и пайплайна,
    затем создаёт PipelineRun (с повторами) и, если есть, PipelineStructure.

    no_apply=True пропускает все обращения к кластеру, но результаты
    заполняются так же, как после успешного применения.
    Частично применённое при ошибке не откатывается: повторный запуск идемпотентен.
    """

    def __init__(
        self,
        client: Optional[ClusterClient],
        namespace: str,
        retry: Optional[RetryPolicy] = None,
        no_apply: bool = False,
        service_account: str = "",
        trigger: str = "manual",
        logs: Optional[List[str]] = None,
    ) -> None:
        if client is None and not no_apply:
            raise ApplyError("a cluster client is required unless --no-apply is used")
        self.client = client
        self.namespace = namespace
        self.retry = retry or RetryPolicy()
        self.no_apply = no_apply
        self.service_account = service_account
        self.trigger = trigger
        self.logs: List[str] = logs if logs is not None else []

    def apply(
        self,
        graph: CrdGraph,
        params: List[Param],
        labels: Dict[str, str],
        results: Optional[TaskResults] = None,
    ) -> TaskResults:
        ns = self.namespace
        results = results if results is not None else TaskResults()

        bindings: List[PipelineResourceBinding] = []
        for resource in graph.resources:
            name = resource.metadata.name
            bindings.append(
                PipelineResourceBinding(
                    name=name,
                    resource_ref=PipelineResourceRef(name=name, api_version=resource.api_version),
                )
            )
            if not self.no_apply:
                try:
                    self.client.create_or_update_resource(ns, resource)
                except ApplyError as e:
                    raise ApplyError(
                        f"failed to create/update PipelineResource {name} in namespace {ns}: {e.description}"
                    ) from e
                log(self.logs, f"upserted PipelineResource {info(name)}")

        for task in graph.tasks:
            task.metadata.namespace = ns
            if not self.no_apply:
                try:
                    self.client.create_or_update_task(ns, task)
                except ApplyError as e:
                    raise ApplyError(
                        f"failed to create/update the task {task.metadata.name} in namespace {ns}: {e.description}"
                    ) from e
                log(self.logs, f"upserted Task {info(task.metadata.name)}")

        pipeline = graph.pipeline
        pipeline.metadata.namespace = ns
        _default_type_meta(pipeline)
        if not self.no_apply:
            try:
                pipeline = self.client.create_or_update_pipeline(ns, pipeline, labels)
            except ApplyError as e:
                raise ApplyError(
                    f"failed to create/update the Pipeline in namespace {ns}: {e.description}"
                ) from e
            _default_type_meta(pipeline)
            log(self.logs, f"upserted Pipeline {info(pipeline.metadata.name)}")

        run = self.pipeline_run(pipeline, bindings, params, labels)
        if not self.no_apply:
            self.retry.call(
                lambda: self.client.create_pipeline_run(ns, run),
                f"failed to create the PipelineRun in namespace {ns}",
            )
            log(self.logs, f"created PipelineRun {info(run.metadata.name)}")

        structure = graph.structure
        if structure is not None:
            self._stamp_structure(structure, pipeline, run)
            if not self.no_apply:
                # PipelineRun уже создан: откатывать его не пытаемся, ошибка фатальна
                try:
                    self.client.create_structure(ns, structure)
                except ApplyError as e:
                    raise StructurePersistError(
                        f"failed to create the PipelineStructure in namespace {ns}: {e.description}"
                    ) from e
                log(self.logs, f"created PipelineStructure {info(structure.metadata.name)}")

        results.tasks = graph.tasks
        results.pipeline = pipeline
        results.resources = graph.resources
        results.pipeline_run = run
        results.structure = structure
        results.pipeline_params = list(params)
        return results

    def pipeline_run(
        self,
        pipeline: Pipeline,
        bindings: List[PipelineResourceBinding],
        params: List[Param],
        labels: Dict[str, str],
    ) -> PipelineRun:
        return PipelineRun(
            metadata=ObjectMeta(
                name=pipeline.metadata.name,
                namespace=self.namespace,
                owner_references=[owner_reference(pipeline)],
                labels=merge_maps(labels),
            ),
            spec=PipelineRunSpec(
                service_account=self.service_account,
                trigger=PipelineTrigger(type=self.trigger),
                pipeline_ref=PipelineRef(
                    name=pipeline.metadata.name,
                    api_version=pipeline.api_version or TEKTON_API_VERSION,
                ),
                resources=list(bindings),
                params=list(params),
            ),
        )

    def _stamp_structure(
        self, structure: PipelineStructure, pipeline: Pipeline, run: PipelineRun
    ) -> None:
        structure.metadata.owner_references = [owner_reference(pipeline)]
        if structure.pipeline_ref is None:
            structure.pipeline_ref = pipeline.metadata.name
        structure.metadata.name = run.metadata.name
        structure.metadata.namespace = self.namespace
        structure.pipeline_run_ref = run.metadata.name
