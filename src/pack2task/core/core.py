import click

from typing import Dict, List, Optional

from pack2task.exception import MissingOptionError, Pack2TaskError
from pack2task.model import PipelineConfig, ProjectConfig

from .models import GitRepository, PodTemplate, TaskOptions, TaskResults
from .renders.files import write_output
from .renders.table import render_steps_table
from .services.builders.config_resolver import resolve_pipeline_config
from .services.builders.graph import CrdGraph, GraphBuilder, build_labels
from .services.builders.injector import InjectionContext
from .services.builders.pod_templates import PodTemplateResolver
from .services.builders.steps import StepCompiler
from .services.builders.version import CommandRunner, ShellCommandRunner, VersionResolver
from .services.reconciler import ClusterClient, Reconciler, RetryPolicy


class Pack2TaskCore:
    """
    Один запуск генерации: Resolver -> Compiler -> Version -> Graph -> Reconciler.

    Всё состояние (логи, счётчик шагов, отсутствующие pod template'ы) создаётся
    заново на каждый вызов create_task, поэтому экземпляр можно переиспользовать.
    """

    def __init__(
        self,
        client: Optional[ClusterClient] = None,
        runner: Optional[CommandRunner] = None,
        retry: Optional[RetryPolicy] = None,
    ) -> None:
        self.client = client
        self.runner = runner or ShellCommandRunner()
        self.retry = retry

    def create_task(
        self,
        options: TaskOptions,
        project_config: ProjectConfig,
        build_pack_config: Optional[PipelineConfig],
        pod_templates: Dict[str, PodTemplate],
        git_info: Optional[GitRepository],
    ) -> TaskResults:
        results = TaskResults()
        logs: List[str] = results.logs
        warnings: List[str] = results.warnings

        try:
            if not options.docker_registry:
                raise MissingOptionError("docker-registry")
            if not options.pipeline_kind:
                raise MissingOptionError("kind")
            language = options.pack or project_config.build_pack
            if not language:
                raise MissingOptionError("pack")

            # 1) Итоговый конфиг пайплайна
            config = resolve_pipeline_config(build_pack_config, project_config.pipeline_config, logs)

            # 2) Версия (до генерации Task: параметры нужны в env шагов)
            versions = VersionResolver(self.runner, options.dir, logs=logs, warnings=warnings)
            version = versions.resolve(
                config,
                options.pipeline_kind,
                branch=options.branch,
                revision=options.revision,
                build_number=options.build_number,
                no_set_version=options.no_set_version,
                view_steps=options.view_steps,
            )
            params = version.params
            results.pipeline_params = list(params)

            templates = PodTemplateResolver(pod_templates, warnings=warnings)
            injection = InjectionContext(
                docker_registry=options.docker_registry,
                pipeline_kind=options.pipeline_kind,
                context=options.context,
                git_info=git_info,
                branch=options.branch,
                params=tuple(params),
            )
            builder = GraphBuilder(
                options,
                git_info,
                params,
                injection,
                templates,
                revision=version.revision,
                logs=logs,
            )

            # 3) Граф CRD: декларативный путь или build pack
            lifecycles = config.pipelines.get(options.pipeline_kind)
            from_yaml = lifecycles is not None and lifecycles.pipeline is not None
            labels = build_labels(
                git_info, options.branch, options.custom_labels, from_yaml=from_yaml, logs=logs
            )
            graph = self._build_graph(
                builder, config, language, options, templates, injection, git_info, labels, logs, warnings
            )
            results.missing_pod_templates = sorted(templates.missing)

            if options.view_steps:
                click.echo(render_steps_table(graph.tasks))
                results.tasks = graph.tasks
                results.pipeline = graph.pipeline
                results.resources = graph.resources
                results.structure = graph.structure
                return results

            # 4) Применяем к кластеру (или только заполняем результаты при no-apply)
            reconciler = Reconciler(
                self.client,
                options.namespace,
                retry=self.retry or RetryPolicy(duration=options.retry_duration),
                no_apply=options.no_apply,
                service_account=options.service_account,
                trigger=options.trigger,
                logs=logs,
            )
            reconciler.apply(graph, params, labels, results)

            # 5) Документы на диск
            if options.output_dir:
                write_output(options.output_dir, results, logs)
        except Pack2TaskError as e:
            e.logs = [*logs, *e.logs]
            raise

        return results

    def _build_graph(
        self,
        builder: GraphBuilder,
        config: PipelineConfig,
        language: str,
        options: TaskOptions,
        templates: PodTemplateResolver,
        injection: InjectionContext,
        git_info: Optional[GitRepository],
        labels: Dict[str, str],
        logs: List[str],
        warnings: List[str],
    ) -> CrdGraph:
        compiler = StepCompiler(
            templates,
            injection,
            git_info=git_info,
            source_name=options.source_name,
            custom_image=options.custom_image,
            logs=logs,
            warnings=warnings,
        )
        lifecycles = compiler.select_lifecycles(config, options.pipeline_kind)
        if lifecycles.pipeline is not None:
            return builder.build_declarative(lifecycles.pipeline, labels)

        # Если версия уже вычислена заранее, стадия setversion в Task не нужна
        compiled = compiler.compile(
            config,
            language,
            options.pipeline_kind,
            set_version_stage=options.no_set_version,
        )
        return builder.build_from_steps(compiled, labels)
