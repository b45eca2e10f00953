from typing import Dict, List, Optional, Set

from pack2task.core.config import DEFAULT_POD_TEMPLATE
from pack2task.core.models import Container, PodTemplate
from pack2task.exception import ConfigError, NoContainersError
from pack2task.utils import warn


class PodTemplateResolver:
    """
    Выбирает pod template по логическому имени контейнера.

    Отсутствующий шаблон не фатален: пишем предупреждение, запоминаем имя
    в missing и подставляем шаблон по умолчанию.
    Один экземпляр на одну компиляцию (missing копится между вызовами).
    """

    def __init__(
        self,
        templates: Dict[str, PodTemplate],
        default_name: str = DEFAULT_POD_TEMPLATE,
        warnings: Optional[List[str]] = None,
    ) -> None:
        self.templates = templates
        self.default_name = default_name
        self.missing: Set[str] = set()
        self.warnings: List[str] = warnings if warnings is not None else []

    def template(self, name: str) -> PodTemplate:
        pod = self.templates.get(name)
        if pod is None:
            warn(self.warnings, f"Could not find a pod template for containerName {name}")
            self.missing.add(name)
            pod = self.templates.get(self.default_name)
            if pod is None or not pod.spec.containers:
                raise ConfigError(
                    f"no default pod template {self.default_name!r} with containers "
                    f"to use instead of {name!r}"
                )
        if not pod.spec.containers:
            raise NoContainersError(name)
        return pod

    def resolve(self, name: str) -> Container:
        """Контейнер (копия) для шага, который запускается в контейнере name."""
        return self.template(name).spec.containers[0].model_copy(deep=True)
