from pathlib import Path
import os
from tempfile import gettempdir

"""
Базовые настройки pack2task.

Все значения по умолчанию можно переопределить переменными окружения PACK2TASK_*.
Временные клоны репозиториев складываются в <tmp>/pack2task (PACK2TASK_WORKDIR).
"""

BASE_TEMP_DIR = Path(
    os.getenv("PACK2TASK_WORKDIR", gettempdir())
) / "pack2task"

# Корень, под которым в контейнерах шагов лежит исходный код
WORKSPACE_ROOT = os.getenv("PACK2TASK_WORKSPACE_ROOT", "/workspace")

# Контейнер, если в пайплайне не указан agent.container
DEFAULT_CONTAINER = os.getenv("PACK2TASK_DEFAULT_CONTAINER", "maven")

# Pod template, который подставляется вместо отсутствующего
DEFAULT_POD_TEMPLATE = os.getenv("PACK2TASK_DEFAULT_POD_TEMPLATE", "default")

SERVICE_ACCOUNT = os.getenv("PACK2TASK_SERVICE_ACCOUNT", "tekton-bot")
NAMESPACE = os.getenv("PACK2TASK_NAMESPACE", "jx")

# Сколько секунд пытаемся создать PipelineRun и с каким интервалом
RETRY_SECONDS = float(os.getenv("PACK2TASK_RETRY_SECONDS", "30"))
RETRY_INTERVAL = float(os.getenv("PACK2TASK_RETRY_INTERVAL", "1"))

TEKTON_API_VERSION = "tekton.dev/v1alpha1"
STRUCTURE_API_VERSION = "jenkins.io/v1"

LABEL_PIPELINE_FROM_YAML = "jenkins.io/pipelineFromYaml"

TEMP_ORDERING_RESOURCE_NAME = "temp-ordering-resource"
TEMP_ORDERING_RESOURCE_IMAGE = "alpine"

# Переменная, которую шагам нельзя наследовать из pod template
RESERVED_ENV_VAR = "JENKINS_URL"

PODINFO_VOLUME_NAME = "podinfo"
PODINFO_MOUNT_PATH = "/etc/podinfo"

PROJECT_CONFIG_FILE = "jenkins-x.yml"
BUILD_PACK_CONFIG_FILE = "pipeline.yaml"
VERSION_FILE = "VERSION"
