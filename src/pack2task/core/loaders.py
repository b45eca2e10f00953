from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from pack2task.exception import ConfigError
from pack2task.model import PipelineConfig, ProjectConfig
from pack2task.utils import info, log

from .config import BUILD_PACK_CONFIG_FILE, PROJECT_CONFIG_FILE
from .models import PodTemplate

# Имя build pack'а, при котором используется только конфиг проекта
NO_BUILD_PACK = "none"


def load_yaml_mapping(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except OSError as e:
        raise ConfigError(f"failed to read file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e

    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise ConfigError(f"file {path} must contain a YAML mapping")
    return dict(payload)


def project_config_path(directory: str, context: str = "") -> Path:
    """jenkins-x-<context>.yml, если он есть, иначе jenkins-x.yml."""
    base = Path(directory or ".")
    if context:
        path = base / f"jenkins-x-{context}.yml"
        if path.is_file():
            return path
    return base / PROJECT_CONFIG_FILE


def load_project_config(
    directory: str, context: str = "", logs: Optional[List[str]] = None
) -> ProjectConfig:
    """Конфиг проекта; отсутствующий файл означает пустой конфиг."""
    logs = logs if logs is not None else []
    path = project_config_path(directory, context)
    if not path.is_file():
        log(logs, f"Конфиг проекта {info(path)} не найден, используем только build pack")
        return ProjectConfig()
    try:
        config = ProjectConfig.model_validate(load_yaml_mapping(path))
    except PydanticValidationError as e:
        raise ConfigError(f"failed to load project config {path}: {e}") from e
    log(logs, f"Загружен конфиг проекта {info(path)}")
    return config


def load_build_pack(
    packs_dir: str, pack: str, logs: Optional[List[str]] = None
) -> Optional[PipelineConfig]:
    """
    <packs_dir>/<pack>/pipeline.yaml. Для pack == "none" (или пустого) build pack
    не используется и возвращается None.
    """
    logs = logs if logs is not None else []
    if not pack or pack == NO_BUILD_PACK:
        return None

    pack_dir = Path(packs_dir) / pack
    if not pack_dir.is_dir():
        raise ConfigError(f"build pack {pack!r} not found in {packs_dir}")
    path = pack_dir / BUILD_PACK_CONFIG_FILE
    if not path.is_file():
        raise ConfigError(f"no {BUILD_PACK_CONFIG_FILE} in build pack {pack_dir}")
    try:
        config = PipelineConfig.model_validate(load_yaml_mapping(path))
    except PydanticValidationError as e:
        raise ConfigError(f"failed to load build pack {path}: {e}") from e
    log(logs, f"Загружен build pack {info(pack)} из {info(path)}")
    return config


def parse_pod_templates(data: Mapping[str, Any]) -> Dict[str, PodTemplate]:
    """
    Словарь имя -> Pod. Принимает и ConfigMap (поле data, значения - YAML-строки),
    и обычный YAML-словарь с Pod'ами.
    """
    if data.get("kind") == "ConfigMap":
        data = data.get("data") or {}

    answer: Dict[str, PodTemplate] = {}
    for name, value in data.items():
        if isinstance(value, str):
            try:
                value = yaml.safe_load(value)
            except yaml.YAMLError as e:
                raise ConfigError(f"invalid pod template {name}: {e}") from e
        try:
            answer[str(name)] = PodTemplate.model_validate(value or {})
        except PydanticValidationError as e:
            raise ConfigError(f"invalid pod template {name}: {e}") from e
    return answer


def load_pod_templates(path: str, logs: Optional[List[str]] = None) -> Dict[str, PodTemplate]:
    logs = logs if logs is not None else []
    templates = parse_pod_templates(load_yaml_mapping(Path(path)))
    log(logs, f"Загружено pod template'ов: {len(templates)} из {info(path)}")
    return templates
