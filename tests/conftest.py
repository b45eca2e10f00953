from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from pack2task.core.models import Container, EnvVar, GitRepository, PodSpec, PodTemplate, TaskOptions, Volume
from pack2task.core.services.builders.injector import InjectionContext
from pack2task.core.services.builders.pod_templates import PodTemplateResolver
from pack2task.core.services.reconciler import InMemoryClusterClient, RetryPolicy
from pack2task.model import PipelineConfig


class FakeRunner:
    """CommandRunner для тестов: запоминает команды, умеет падать и писать файлы."""

    def __init__(
        self,
        errors: Optional[Dict[str, str]] = None,
        on_run: Optional[Callable[[str, str], None]] = None,
    ) -> None:
        self.commands: List[Tuple[str, str]] = []
        self.errors = errors or {}
        self.on_run = on_run

    def run(self, command: str, directory: str) -> Tuple[str, Optional[str]]:
        self.commands.append((command, directory))
        if command in self.errors:
            return "", self.errors[command]
        if self.on_run is not None:
            self.on_run(command, directory)
        return "", None


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def pod(image: str, env: Optional[Dict[str, str]] = None, volumes: Optional[List[str]] = None) -> PodTemplate:
    return PodTemplate(
        spec=PodSpec(
            containers=[
                Container(
                    name="jnlp",
                    image=image,
                    env=[EnvVar(name=k, value=v) for k, v in (env or {}).items()],
                )
            ],
            volumes=[Volume(name=v) for v in (volumes or [])],
        )
    )


@pytest.fixture
def pod_templates() -> Dict[str, PodTemplate]:
    return {
        "default": pod("jenkinsxio/builder-base:0.1"),
        "maven": pod("jenkinsxio/builder-maven:0.1", env={"JENKINS_URL": "http://jenkins", "MAVEN_OPTS": "-Xmx1g"}, volumes=["docker-sock"]),
        "nodejs": pod("jenkinsxio/builder-nodejs:0.1"),
    }


@pytest.fixture
def resolver(pod_templates: Dict[str, PodTemplate]) -> PodTemplateResolver:
    return PodTemplateResolver(pod_templates)


@pytest.fixture
def git_info() -> GitRepository:
    return GitRepository(
        host="github.com",
        organisation="acme",
        name="demo",
        clone_url="https://github.com/acme/demo.git",
    )


@pytest.fixture
def injection(git_info: GitRepository) -> InjectionContext:
    return InjectionContext(
        docker_registry="registry.example.com",
        pipeline_kind="release",
        git_info=git_info,
        branch="master",
    )


@pytest.fixture
def build_pack() -> PipelineConfig:
    return PipelineConfig.model_validate(
        {
            "agent": {"label": "jenkins-maven", "container": "maven"},
            "pipelines": {
                "pullRequest": {
                    "build": {"steps": [{"name": "mvn-install", "command": "mvn install"}]},
                },
                "release": {
                    "setVersion": {
                        "steps": [
                            {"name": "next-version", "command": "jx step next-version --use-git-tag-only"},
                            {"name": "tag-version", "command": "jx step tag --version \\$(cat VERSION)"},
                        ]
                    },
                    "build": {
                        "steps": [
                            {"name": "mvn-deploy", "command": "mvn clean deploy"},
                            {
                                "name": "skaffold",
                                "dir": "charts/REPLACE_ME_APP_NAME",
                                "steps": [{"command": "make release"}],
                            },
                        ]
                    },
                    "promote": {
                        "steps": [{"name": "changelog", "command": "jx step changelog --version v$(cat ../../VERSION)"}],
                    },
                },
            },
        }
    )


@pytest.fixture
def options(tmp_path: Path) -> TaskOptions:
    return TaskOptions(
        pack="maven",
        dir=str(tmp_path),
        pipeline_kind="release",
        docker_registry="registry.example.com",
        branch="master",
        namespace="jx",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fast_retry(clock: FakeClock) -> RetryPolicy:
    return RetryPolicy(duration=5, interval=1, sleep=clock.sleep, clock=clock)


@pytest.fixture
def cluster() -> InMemoryClusterClient:
    return InMemoryClusterClient()
