from pathlib import Path
from typing import List, Optional

import yaml

from pack2task.core.models import CrdModel, TaskResults
from pack2task.exception import OutputError
from pack2task.utils import info, log


def to_yaml(obj: CrdModel) -> str:
    return yaml.safe_dump(obj.to_dict(), sort_keys=False, default_flow_style=False, allow_unicode=True)


def _write(folder: Path, filename: str, obj: CrdModel, kind: str, logs: List[str]) -> Path:
    path = folder / filename
    try:
        path.write_text(to_yaml(obj), encoding="utf-8")
    except OSError as e:
        raise OutputError(f"failed to save {kind} file {path}: {e}") from e
    log(logs, f"generated {kind} at {info(path)}")
    return path


def write_output(
    folder: str,
    results: TaskResults,
    logs: Optional[List[str]] = None,
) -> List[Path]:
    """
    Сохраняет сгенерированные объекты по одному документу на файл:
    pipeline.yml, pipeline-run.yml, structure.yml, task-<i>.yml, resource-<i>.yml.
    """
    logs = logs if logs is not None else []
    out = Path(folder)
    try:
        out.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OutputError(f"failed to create output directory {out}: {e}") from e

    written: List[Path] = []
    if results.pipeline is not None:
        written.append(_write(out, "pipeline.yml", results.pipeline, "Pipeline", logs))
    if results.pipeline_run is not None:
        written.append(_write(out, "pipeline-run.yml", results.pipeline_run, "PipelineRun", logs))
    if results.structure is not None:
        written.append(_write(out, "structure.yml", results.structure, "PipelineStructure", logs))
    for i, task in enumerate(results.tasks):
        written.append(_write(out, f"task-{i}.yml", task, "Task", logs))
    for i, resource in enumerate(results.resources):
        written.append(_write(out, f"resource-{i}.yml", resource, "PipelineResource", logs))
    return written
