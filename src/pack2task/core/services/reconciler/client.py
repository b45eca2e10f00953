import json
import subprocess
from typing import Any, Dict, List, Optional, Protocol, TypeVar

import yaml

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


class ClusterClient(Protocol):
    """
    Хранилище объектов кластера, с которым работает Reconciler.

    Все методы при ошибке бросают ApplyError.
    create_or_update_* идемпотентны; create_* падают, если объект уже есть.
    """

    def create_or_update_resource(self, ns: str, resource: PipelineResource) -> PipelineResource: ...

    def create_or_update_task(self, ns: str, task: Task) -> Task: ...

    def create_or_update_pipeline(
        self, ns: str, pipeline: Pipeline, labels: Dict[str, str]
    ) -> Pipeline: ...

    def create_pipeline_run(self, ns: str, run: PipelineRun) -> PipelineRun: ...

    def create_structure(self, ns: str, structure: PipelineStructure) -> PipelineStructure: ...


class KubectlClient:
    """
    ClusterClient поверх kubectl: объект уходит в stdin как YAML,
    ответ сервера (с uid) читается из JSON-вывода.
    """

    def __init__(self, kubectl: str = "kubectl", kube_context: Optional[str] = None) -> None:
        self.kubectl = kubectl
        self.kube_context = kube_context

    def _kubectl(self, args: List[str], obj: CrdModel) -> Dict[str, Any]:
        cmd = [self.kubectl]
        if self.kube_context:
            cmd += ["--context", self.kube_context]
        cmd += [*args, "-o", "json", "-f", "-"]
        try:
            p = subprocess.run(
                cmd,
                input=yaml.safe_dump(obj.to_dict(), sort_keys=False),
                text=True,
                capture_output=True,
                check=False,
            )
        except OSError as e:
            raise ApplyError(f"failed to run {self.kubectl}: {e}") from e
        if p.returncode != 0:
            raise ApplyError(f"{' '.join(cmd[:-4])} failed: {p.stderr.strip()}")
        if not p.stdout.strip():
            return {}
        try:
            return json.loads(p.stdout)
        except json.JSONDecodeError as e:
            raise ApplyError(f"unexpected output from {self.kubectl}: {e}") from e

    def _send(self, verb: str, ns: str, obj: T) -> T:
        data = self._kubectl([verb, "-n", ns], obj)
        if not data:
            return obj
        return type(obj).model_validate(data)

    def create_or_update_resource(self, ns: str, resource: PipelineResource) -> PipelineResource:
        return self._send("apply", ns, resource)

    def create_or_update_task(self, ns: str, task: Task) -> Task:
        return self._send("apply", ns, task)

    def create_or_update_pipeline(
        self, ns: str, pipeline: Pipeline, labels: Dict[str, str]
    ) -> Pipeline:
        pipeline = pipeline.model_copy(deep=True)
        pipeline.metadata.labels = merge_maps(pipeline.metadata.labels, labels)
        return self._send("apply", ns, pipeline)

    def create_pipeline_run(self, ns: str, run: PipelineRun) -> PipelineRun:
        return self._send("create", ns, run)

    def create_structure(self, ns: str, structure: PipelineStructure) -> PipelineStructure:
        return self._send("create", ns, structure)
