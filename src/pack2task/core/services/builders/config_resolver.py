from typing import List, Optional

from pack2task.exception import ConfigError
from pack2task.model import (
    LIFECYCLE_ORDER,
    PIPELINE_KINDS,
    Agent,
    PipelineConfig,
    PipelineLifecycles,
    kind_field,
)
from pack2task.utils import log


def _extend_lifecycles(
    base: Optional[PipelineLifecycles],
    override: Optional[PipelineLifecycles],
) -> Optional[PipelineLifecycles]:
    """
    Стадия из override заменяет стадию base целиком (шаги не склеиваются).
    Незаданные в override стадии берутся из base.
    """
    if override is None:
        return base.model_copy(deep=True) if base is not None else None
    if base is None:
        return override.model_copy(deep=True)

    answer = base.model_copy(deep=True)
    for name in LIFECYCLE_ORDER:
        lifecycle = getattr(override, name)
        if lifecycle is not None:
            setattr(answer, name, lifecycle.model_copy(deep=True))
    return answer


def _extend_agent(base: Agent, override: Agent) -> Agent:
    return Agent(
        label=override.label or base.label,
        container=override.container or base.container,
        image=override.image or base.image,
    )


def extend_pipeline(base: PipelineConfig, override: PipelineConfig) -> PipelineConfig:
    """Накладывает локальный PipelineConfig проекта поверх конфига build pack'а."""
    answer = PipelineConfig(agent=_extend_agent(base.agent, override.agent))
    for kind in PIPELINE_KINDS:
        merged = _extend_lifecycles(base.pipelines.get(kind), override.pipelines.get(kind))
        setattr(answer.pipelines, kind_field(kind), merged)
    return answer


def resolve_pipeline_config(
    base: Optional[PipelineConfig],
    override: Optional[PipelineConfig],
    logs: Optional[List[str]] = None,
) -> PipelineConfig:
    """
    Строит итоговый PipelineConfig из конфига build pack'а (base) и
    локального конфига проекта (override).

    Если override содержит полностью декларативный пайплайн, он возвращается
    как есть, а base не используется вовсе.
    """
    logs = logs if logs is not None else []

    if override is not None and override.declarative():
        log(logs, "Найден декларативный пайплайн, конфиг build pack'а не используется.")
        return override
    if base is None and override is None:
        raise ConfigError("no pipeline configuration found in the build pack or the project")
    if base is None:
        log(logs, "Build pack не задан, используем только конфиг проекта.")
        return override.model_copy(deep=True)
    if override is None:
        return base.model_copy(deep=True)

    log(logs, "Накладываем локальные переопределения пайплайна на build pack.")
    return extend_pipeline(base, override)
