from typing import List, Optional, Tuple

import click

from pack2task.core.config import NAMESPACE, RETRY_SECONDS, SERVICE_ACCOUNT
from pack2task.core.core import Pack2TaskCore
from pack2task.core.loaders import (
    NO_BUILD_PACK,
    load_build_pack,
    load_pod_templates,
    load_project_config,
)
from pack2task.core.models import GitRepository, TaskOptions, TaskResults
from pack2task.core.services.git_module import (
    GitLocalPathError,
    GitSource,
    LocalRepo,
    parse_git_url,
)
from pack2task.core.services.reconciler import KubectlClient
from pack2task.exception import ConfigError, MissingOptionError
from pack2task.model import PIPELINE_KINDS
from pack2task.utils import info, log, warn


def _source_repository(
    git: GitSource, options: TaskOptions, logs: List[str], warnings: List[str]
) -> Tuple[Optional[GitRepository], str]:
    """Репозиторий проекта и ветка: из рабочей копии, либо из --clone-git-url."""
    try:
        git_info, branch = git.discover(options.dir)
    except GitLocalPathError:
        if not options.clone_git_url:
            warn(warnings, f"{options.dir} is not a git repository, no git information available")
            return None, options.branch
        git_info, branch = GitRepository(), ""

    if options.clone_git_url and not git_info.clone_url:
        git_info = parse_git_url(options.clone_git_url)
    log(logs, f"Репозиторий {info(git_info.organisation + '/' + git_info.name)} ({git_info.clone_url})")
    return git_info, options.branch or branch


def _packs_dir(
    git: GitSource, packs_dir: str, options: TaskOptions, logs: List[str]
) -> Tuple[str, Optional[LocalRepo]]:
    if packs_dir:
        return packs_dir, None
    if not options.build_pack_url:
        return "", None
    cloned = git.clone(options.build_pack_url, revision=options.build_pack_ref, prefix="packs_")
    logs.extend(cloned.logs)
    return str(cloned.repo_path / "packs"), cloned


def _print_summary(results: TaskResults) -> None:
    for ref in results.object_references():
        click.echo(f"{ref.kind} {info(ref.name)} ({ref.api_version})")
    if results.missing_pod_templates:
        click.echo(
            f"missing pod templates: {', '.join(results.missing_pod_templates)}", err=True
        )


@click.command()
@click.option("-p", "--pack", default="", help="Имя build pack'а (none - только конфиг проекта)")
@click.option("-d", "--dir", "directory", default=".", help="Директория проекта")
@click.option("-u", "--url", "build_pack_url", default="", help="git URL репозитория с build pack'ами")
@click.option("-r", "--ref", "build_pack_ref", default="master", help="Ветка / тег репозитория build pack'ов")
@click.option("--packs-dir", default="", help="Локальная директория с build pack'ами (вместо --url)")
@click.option("-k", "--kind", "pipeline_kind", default="release", type=click.Choice(PIPELINE_KINDS), help="Вид пайплайна")
@click.option("-c", "--context", default="", help="Контекст пайплайна (jenkins-x-<context>.yml)")
@click.option("-l", "--label", "labels", multiple=True, help="Дополнительный label key=value")
@click.option("--no-apply", is_flag=True, help="Только сгенерировать объекты, без обращения к кластеру")
@click.option("--trigger", default="manual", help="Тип триггера PipelineRun")
@click.option("--target-path", default="", help="targetPath для git-ресурса")
@click.option("--source", "source_name", default="source", help="Имя директории с исходниками в workspace")
@click.option("--image", "custom_image", default="", help="Образ для всех шагов")
@click.option("--docker-registry", default="", help="Хост docker registry (DOCKER_REGISTRY)")
@click.option("--clone-git-url", default="", help="Клонировать исходники из этого URL во временную папку")
@click.option("--branch", default="", help="Ветка исходников")
@click.option("--revision", default="", help="Ревизия исходников")
@click.option("--pr-number", default="", help="Номер pull request'а")
@click.option("--delete-temp-dir", is_flag=True, help="Удалить временный клон после запуска")
@click.option("--view", "view_steps", is_flag=True, help="Показать шаги и выйти")
@click.option("--no-set-version", is_flag=True, help="Не вычислять версию заранее")
@click.option("--duration", "retry_duration", default=RETRY_SECONDS, type=float, show_default=True, help="Сколько секунд повторять создание PipelineRun")
@click.option("-o", "--output", "output_dir", default="", help="Директория для YAML-документов")
@click.option("-n", "--namespace", default=NAMESPACE, show_default=True, help="Namespace кластера")
@click.option("--service-account", default=SERVICE_ACCOUNT, show_default=True, help="ServiceAccount PipelineRun")
@click.option("--pod-templates", default="", help="YAML с pod template'ами (ConfigMap или словарь)")
@click.option("--build-number", default="1", help="Номер сборки")
@click.option("--kube-context", default="", help="kubectl --context")
def main(
    pack: str,
    directory: str,
    build_pack_url: str,
    build_pack_ref: str,
    packs_dir: str,
    pipeline_kind: str,
    context: str,
    labels: Tuple[str, ...],
    no_apply: bool,
    trigger: str,
    target_path: str,
    source_name: str,
    custom_image: str,
    docker_registry: str,
    clone_git_url: str,
    branch: str,
    revision: str,
    pr_number: str,
    delete_temp_dir: bool,
    view_steps: bool,
    no_set_version: bool,
    retry_duration: float,
    output_dir: str,
    namespace: str,
    service_account: str,
    pod_templates: str,
    build_number: str,
    kube_context: str,
):
    """Генерирует Tekton Pipeline из build pack'а и конфига проекта и применяет его к кластеру."""
    if not docker_registry:
        raise MissingOptionError("docker-registry")

    options = TaskOptions(
        pack=pack,
        dir=directory,
        build_pack_url=build_pack_url,
        build_pack_ref=build_pack_ref,
        pipeline_kind=pipeline_kind,
        context=context,
        custom_labels=list(labels),
        no_apply=no_apply,
        trigger=trigger,
        target_path=target_path,
        source_name=source_name,
        custom_image=custom_image,
        docker_registry=docker_registry,
        clone_git_url=clone_git_url,
        branch=branch,
        revision=revision,
        pr_number=pr_number,
        delete_temp_dir=delete_temp_dir,
        view_steps=view_steps,
        no_set_version=no_set_version,
        retry_duration=retry_duration,
        service_account=service_account,
        namespace=namespace,
        output_dir=output_dir,
        build_number=build_number,
    )

    logs: List[str] = []
    warnings: List[str] = []
    git = GitSource()
    source: Optional[LocalRepo] = None
    packs: Optional[LocalRepo] = None
    try:
        if clone_git_url:
            source = git.clone(clone_git_url, branch=branch, pr_number=pr_number, revision=revision)
            logs.extend(source.logs)
            options.dir = str(source.repo_path)

        git_info, options.branch = _source_repository(git, options, logs, warnings)

        project = load_project_config(options.dir, context, logs)
        language = pack or project.build_pack
        build_pack = None
        if language and language != NO_BUILD_PACK:
            location, packs = _packs_dir(git, packs_dir, options, logs)
            if not location:
                raise ConfigError("no build pack location: use --packs-dir or --url")
            build_pack = load_build_pack(location, language, logs)
        options.pack = language

        templates = load_pod_templates(pod_templates, logs) if pod_templates else {}

        client = None if (no_apply or view_steps) else KubectlClient(kube_context=kube_context or None)
        core = Pack2TaskCore(client=client)
        results = core.create_task(options, project, build_pack, templates, git_info)
    finally:
        if packs is not None:
            packs.cleanup()
        if source is not None and delete_temp_dir:
            try:
                if source.cleanup():
                    click.echo(f"Временная папка {info(source.temp_root)} удалена")
            except OSError as e:
                click.echo(f"Не удалось удалить временную папку {source.temp_root}: {e}", err=True)

    if not view_steps:
        _print_summary(results)


if __name__ == "__main__":
    main()
