"""
Добавление переменных окружения и томов в шаги Task.

Все функции чистые: на вход контейнер / список томов, на выход новые объекты.
Правило "первый записавший побеждает": если переменная уже объявлена в шаге,
она не перезаписывается, поэтому повторное применение ничего не меняет.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from pack2task.core.config import PODINFO_MOUNT_PATH, PODINFO_VOLUME_NAME, RESERVED_ENV_VAR
from pack2task.core.models import (
    Container,
    DownwardAPIVolumeFile,
    DownwardAPIVolumeSource,
    EnvVar,
    GitRepository,
    Param,
    Volume,
    VolumeMount,
)


@dataclass(frozen=True)
class InjectionContext:
    docker_registry: str = ""
    pipeline_kind: str = ""
    context: str = ""
    git_info: Optional[GitRepository] = None
    branch: str = ""
    params: Tuple[Param, ...] = field(default_factory=tuple)


def _has(env: Sequence[EnvVar], name: str) -> bool:
    return any(e.name == name for e in env)


def _add(env: List[EnvVar], name: str, value: str) -> None:
    if not _has(env, name):
        env.append(EnvVar(name=name, value=value))


def inject_env_vars(env: Sequence[EnvVar], ctx: InjectionContext) -> List[EnvVar]:
    answer = [e.model_copy() for e in env if e.name != RESERVED_ENV_VAR]

    _add(answer, "DOCKER_REGISTRY", ctx.docker_registry)
    if ctx.pipeline_kind:
        _add(answer, "PIPELINE_KIND", ctx.pipeline_kind)
    if ctx.context:
        _add(answer, "PIPELINE_CONTEXT", ctx.context)

    git_info = ctx.git_info
    if git_info is not None:
        owner = git_info.organisation
        repo = git_info.name
        if git_info.clone_url:
            _add(answer, "SOURCE_URL", git_info.clone_url)
        if owner:
            _add(answer, "REPO_OWNER", owner)
        if repo:
            _add(answer, "REPO_NAME", repo)
        if owner and repo and ctx.branch:
            _add(answer, "JOB_NAME", f"{owner}/{repo}/{ctx.branch}")

    if ctx.branch:
        _add(answer, "BRANCH_NAME", ctx.branch)
    _add(answer, "JX_BATCH_MODE", "true")

    for param in ctx.params:
        _add(answer, param.name.upper(), "${inputs.params." + param.name + "}")
    return answer


def podinfo_volume() -> Volume:
    """Том с labels пода в виде файлов (downward API)."""
    return Volume(
        name=PODINFO_VOLUME_NAME,
        downward_api=DownwardAPIVolumeSource(
            items=[
                DownwardAPIVolumeFile(
                    path="labels",
                    field_ref={"fieldPath": "metadata.labels"},
                )
            ]
        ),
    )


def combine_volumes(volumes: Sequence[Volume], *extra: Volume) -> List[Volume]:
    """Склеивает списки томов, пропуская уже имеющиеся имена."""
    answer: List[Volume] = []
    names = set()
    for v in [*volumes, *extra]:
        if v.name not in names:
            answer.append(v)
            names.add(v.name)
    return answer


def inject_volumes(
    container: Container, volumes: Sequence[Volume]
) -> Tuple[Container, List[Volume]]:
    answer = combine_volumes(volumes, podinfo_volume())
    step = container.model_copy(deep=True)
    if not any(m.name == PODINFO_VOLUME_NAME for m in step.volume_mounts):
        step.volume_mounts.append(
            VolumeMount(name=PODINFO_VOLUME_NAME, mount_path=PODINFO_MOUNT_PATH, read_only=True)
        )
    return step, answer


def inject(
    container: Container, volumes: Sequence[Volume], ctx: InjectionContext
) -> Tuple[Container, List[Volume]]:
    step, answer = inject_volumes(container, volumes)
    step.env = inject_env_vars(step.env, ctx)
    return step, answer
