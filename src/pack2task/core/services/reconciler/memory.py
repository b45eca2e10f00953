import uuid
from typing import Dict, List, Optional, Tuple, TypeVar

from pack2task.core.models import (
    CrdModel,
    Pipeline,
    PipelineResource,
    PipelineRun,
    PipelineStructure,
    Task,
)
from pack2task.exception import ApplyError
from pack2task.utils import merge_maps

T = TypeVar("T", bound=CrdModel)

Key = Tuple[str, str, str]


class InMemoryClusterClient:
    """
    ClusterClient без кластера: объекты хранятся в словаре (kind, namespace, name).

    Подменяет кластер в тестах Reconciler и Pack2TaskCore (--no-apply обходится
    вовсе без клиента). fail_on позволяет заставить вызовы падать: ключ - kind,
    значение - сколько раз подряд бросить ApplyError (-1 - всегда).
    """

    def __init__(self, fail_on: Optional[Dict[str, int]] = None) -> None:
        self.objects: Dict[Key, CrdModel] = {}
        self.calls: List[Tuple[str, str, str]] = []
        self.fail_on: Dict[str, int] = dict(fail_on or {})

    def _maybe_fail(self, kind: str, name: str) -> None:
        left = self.fail_on.get(kind, 0)
        if left == 0:
            return
        if left > 0:
            self.fail_on[kind] = left - 1
        raise ApplyError(f"{kind} {name} rejected by the cluster")

    def _store(self, verb: str, ns: str, obj: T, create_only: bool = False) -> T:
        name = obj.metadata.name
        self.calls.append((verb, obj.kind, name))
        self._maybe_fail(obj.kind, name)

        key = (obj.kind, ns, name)
        existing = self.objects.get(key)
        if existing is not None and create_only:
            raise ApplyError(f"{obj.kind} {name} already exists in namespace {ns}")

        stored = obj.model_copy(deep=True)
        stored.metadata.namespace = ns
        stored.metadata.uid = existing.metadata.uid if existing is not None else str(uuid.uuid4())
        self.objects[key] = stored
        return stored.model_copy(deep=True)

    def get(self, kind: str, ns: str, name: str) -> Optional[CrdModel]:
        return self.objects.get((kind, ns, name))

    def list_kind(self, kind: str) -> List[CrdModel]:
        return [obj for (k, _, _), obj in self.objects.items() if k == kind]

    def create_or_update_resource(self, ns: str, resource: PipelineResource) -> PipelineResource:
        return self._store("apply", ns, resource)

    def create_or_update_task(self, ns: str, task: Task) -> Task:
        return self._store("apply", ns, task)

    def create_or_update_pipeline(
        self, ns: str, pipeline: Pipeline, labels: Dict[str, str]
    ) -> Pipeline:
        pipeline = pipeline.model_copy(deep=True)
        pipeline.metadata.labels = merge_maps(pipeline.metadata.labels, labels)
        return self._store("apply", ns, pipeline)

    def create_pipeline_run(self, ns: str, run: PipelineRun) -> PipelineRun:
        return self._store("create", ns, run, create_only=True)

    def create_structure(self, ns: str, structure: PipelineStructure) -> PipelineStructure:
        return self._store("create", ns, structure, create_only=True)
