from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner
from git import Repo

from conftest import FakeRunner
from pack2task.cli import main
from pack2task.core.core import Pack2TaskCore
from pack2task.exception import LabelFormatError, MissingOptionError
from pack2task.model import PipelineConfig, ProjectConfig


def _write_version(command: str, directory: str) -> None:
    if command.startswith("jx step next-version"):
        (Path(directory) / "VERSION").write_text("1.2.3")


def test_release_run_end_to_end(options, build_pack, pod_templates, git_info, cluster, fast_retry) -> None:
    runner = FakeRunner(on_run=_write_version)
    core = Pack2TaskCore(client=cluster, runner=runner, retry=fast_retry)

    results = core.create_task(options, ProjectConfig(), build_pack, pod_templates, git_info)

    task = results.tasks[0]
    # версия вычислена заранее, стадия setversion в Task не попадает
    assert [s.name for s in task.spec.steps] == [
        "setup-jx-git-credentials",
        "build-mvn-deploy",
        "build-step4",
        "promote-changelog",
    ]
    assert [(p.name, p.value) for p in results.pipeline_params] == [("version", "1.2.3")]
    assert results.resources[0].spec.params[0].value == "v1.2.3"
    assert results.pipeline_run.metadata.namespace == "jx"
    assert cluster.get("PipelineRun", "jx", "acme-demo-master") is not None
    assert [r.kind for r in results.object_references()] == ["Task", "Pipeline", "PipelineRun"]
    assert results.missing_pod_templates == []
    assert any("running command" in line for line in results.logs)


def test_no_set_version_keeps_the_setversion_stage(options, build_pack, pod_templates, git_info) -> None:
    options.no_set_version = True
    options.no_apply = True
    runner = FakeRunner()

    results = Pack2TaskCore(runner=runner).create_task(options, ProjectConfig(), build_pack, pod_templates, git_info)

    assert runner.commands == []
    assert results.pipeline_params == []
    assert "setversion-next-version" in [s.name for s in results.tasks[0].spec.steps]


def test_missing_templates_are_reported(options, build_pack, pod_templates, git_info) -> None:
    options.no_apply = True
    options.pipeline_kind = "pullrequest"
    project = ProjectConfig(pipeline_config=PipelineConfig.model_validate({"agent": {"container": "gradle"}}))

    results = Pack2TaskCore(runner=FakeRunner()).create_task(options, project, build_pack, pod_templates, git_info)

    assert results.missing_pod_templates == ["gradle"]
    assert "Could not find a pod template for containerName gradle" in results.warnings
    assert results.pipeline_params[0].value == "0.0.0-SNAPSHOT-master-1"


def test_declarative_project_config_bypasses_the_build_pack(options, build_pack, pod_templates, git_info) -> None:
    options.no_apply = True
    options.pipeline_kind = "feature"
    project = ProjectConfig.model_validate(
        {
            "pipelineConfig": {
                "pipelines": {
                    "feature": {
                        "pipeline": {
                            "agent": {"image": "golang:1.21"},
                            "stages": [{"name": "build", "steps": [{"command": "go build ./..."}]}],
                        }
                    }
                }
            }
        }
    )

    results = Pack2TaskCore(runner=FakeRunner()).create_task(options, project, build_pack, pod_templates, git_info)

    assert results.structure is not None
    assert results.tasks[0].metadata.labels["jenkins.io/pipelineFromYaml"] == "true"
    assert results.tasks[0].spec.steps[0].image == "golang:1.21"


def test_view_steps_prints_the_table_and_applies_nothing(
    options, build_pack, pod_templates, git_info, cluster, capsys
) -> None:
    options.view_steps = True

    results = Pack2TaskCore(client=cluster, runner=FakeRunner()).create_task(
        options, ProjectConfig(), build_pack, pod_templates, git_info
    )

    assert cluster.calls == []
    assert results.pipeline_run is None
    assert "NAME" in capsys.readouterr().out


def test_errors_carry_the_logs_collected_so_far(options, build_pack, pod_templates, git_info) -> None:
    options.custom_labels = ["broken"]
    options.no_apply = True

    with pytest.raises(LabelFormatError) as err:
        Pack2TaskCore(runner=FakeRunner(on_run=_write_version)).create_task(
            options, ProjectConfig(), build_pack, pod_templates, git_info
        )

    assert any("Версия релиза" in line for line in err.value.logs)


def test_docker_registry_is_required(options, build_pack, pod_templates, git_info) -> None:
    options.docker_registry = ""

    with pytest.raises(MissingOptionError, match="--docker-registry"):
        Pack2TaskCore(runner=FakeRunner()).create_task(options, ProjectConfig(), build_pack, pod_templates, git_info)


def test_output_directory_receives_every_document(options, build_pack, pod_templates, git_info, tmp_path) -> None:
    options.no_apply = True
    options.pipeline_kind = "pullrequest"
    options.output_dir = str(tmp_path / "out")

    Pack2TaskCore(runner=FakeRunner()).create_task(options, ProjectConfig(), build_pack, pod_templates, git_info)

    assert sorted(p.name for p in (tmp_path / "out").iterdir()) == [
        "pipeline-run.yml",
        "pipeline.yml",
        "resource-0.yml",
        "task-0.yml",
    ]


@pytest.fixture
def project_dir(tmp_path: Path, build_pack: PipelineConfig) -> Path:
    project = tmp_path / "project"
    project.mkdir()
    repo = Repo.init(project)
    repo.create_remote("origin", "https://github.com/acme/demo.git")
    (project / "jenkins-x.yml").write_text("buildPack: maven\n")

    packs = tmp_path / "packs" / "maven"
    packs.mkdir(parents=True)
    (packs / "pipeline.yaml").write_text(yaml.safe_dump(build_pack.model_dump(by_alias=True, exclude_none=True)))

    (tmp_path / "pods.yaml").write_text(
        yaml.safe_dump({"maven": {"spec": {"containers": [{"name": "maven", "image": "maven:3"}]}}})
    )
    return project


def test_cli_renders_a_pull_request_pipeline(project_dir: Path, tmp_path: Path) -> None:
    result = CliRunner().invoke(
        main,
        [
            "--dir", str(project_dir),
            "--packs-dir", str(tmp_path / "packs"),
            "--pod-templates", str(tmp_path / "pods.yaml"),
            "--kind", "pullrequest",
            "--branch", "PR-7",
            "--docker-registry", "registry.example.com",
            "--no-apply",
            "--output", str(tmp_path / "out"),
        ],
    )

    assert result.exit_code == 0, result.output
    task = yaml.safe_load((tmp_path / "out" / "task-0.yml").read_text())
    assert task["metadata"]["name"] == "acme-demo-pr-7"
    assert task["spec"]["steps"][0]["image"] == "maven:3"
    assert "PipelineRun" in result.output


def test_cli_requires_a_docker_registry(project_dir: Path) -> None:
    result = CliRunner().invoke(main, ["--dir", str(project_dir), "--no-apply"])

    assert result.exit_code != 0
    assert "missing option: --docker-registry" in result.output


def test_cli_requires_a_pack_when_the_project_has_none(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        main, ["--dir", str(tmp_path), "--docker-registry", "registry.example.com", "--no-apply"]
    )

    assert result.exit_code != 0
    assert "missing option: --pack" in result.output
