import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .utils import on_rm_error


@dataclass
class LocalRepo:
    """
    Рабочая копия, с которой работает pack2task.

    repo_path - путь к рабочей копии (исходники проекта или репозиторий build pack'ов).
    temp_root - временная папка клона; None для уже существующего пути,
                такой путь cleanup() никогда не трогает.
    """

    repo_path: Path
    logs: List[str] = field(default_factory=list)
    temp_root: Optional[Path] = None

    @property
    def is_temporary(self) -> bool:
        return self.temp_root is not None

    def cleanup(self) -> bool:
        """Удаляет временный клон. Возвращает True, если папка была удалена."""
        if self.temp_root is None or not self.temp_root.exists():
            return False
        shutil.rmtree(self.temp_root, onerror=on_rm_error)
        return True
