import os
import re
import stat
from pathlib import Path
from typing import Union

from pack2task.core.models import GitRepository


PathLike = Union[str, Path]

_SCP_URL = re.compile(r"^(?:[\w.-]+@)?(?P<host>[\w.-]+):(?P<path>[^/].*)$")
_URL = re.compile(r"^[a-z+]+://(?:[^@/]+@)?(?P<host>[^/:]+)(?::\d+)?/(?P<path>.+)$")


def on_rm_error(func, path, exc_info):
    """
    Обработчик ошибок для shutil.rmtree:
    снимает флаг read-only (частый кейс для .git/objects/pack на Windows)
    и повторно вызывает функцию удаления.
    """
    os.chmod(path, stat.S_IWRITE)
    func(path)


def ensure_base_temp_dir(path: PathLike) -> Path:
    """
    Гарантирует, что BASE_TEMP_DIR существует, и возвращает его как Path.
    """
    base = Path(path)
    base.mkdir(parents=True, exist_ok=True)
    return base


def parse_git_url(url: str) -> GitRepository:
    """
    Разбирает clone URL в GitRepository.

    Поддерживаются https://host/org/repo(.git), ssh://git@host/org/repo.git
    и scp-форма git@host:org/repo.git. Для нераспознанных URL
    заполняется только clone_url.
    """
    url = url.strip()
    m = _URL.match(url) or _SCP_URL.match(url)
    if not m:
        return GitRepository(clone_url=url)

    path = m.group("path").rstrip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    parts = [p for p in path.split("/") if p]
    if len(parts) < 2:
        return GitRepository(host=m.group("host"), clone_url=url)
    return GitRepository(
        host=m.group("host"),
        organisation=parts[-2],
        name=parts[-1],
        clone_url=url,
    )
