from git import (
    Repo as GitRepo,
    GitCommandError,
    InvalidGitRepositoryError,
    NoSuchPathError,
)

from pathlib import Path
from typing import List, Optional, Tuple

from pack2task.core.config import BASE_TEMP_DIR
from pack2task.core.models import GitRepository

from .models import LocalRepo
from .utils import ensure_base_temp_dir, parse_git_url, PathLike
from .exceptions import GitCheckoutError, GitCloneError, GitFetchError, GitLocalPathError

import shutil
import tempfile


class GitSource:
    """
    Фасад над GitPython для подготовки исходников:

    - clone(url, ...)             - клон во временную папку, fetch PR, checkout ревизии;
    - from_existing_path(path)    - использование уже существующей рабочей копии;
    - discover(path)              - организация / имя / clone URL и текущая ветка.

    clone и from_existing_path возвращают LocalRepo с логами шагов.
    """

    def __init__(self, base_temp_dir: PathLike = BASE_TEMP_DIR) -> None:
        self.base_temp_dir = base_temp_dir

    def clone(
        self,
        url: str,
        branch: str = "",
        pr_number: str = "",
        revision: str = "",
        prefix: str = "git_",
    ) -> LocalRepo:
        """
        Клонирует репозиторий во временную папку.

        :param pr_number: если задан, ветка pull/<pr>/head забирается в локальную branch.
        :param revision:  ветка / тег / sha, которую нужно checkout'нуть после клона.
        :raises GitCloneError, GitFetchError, GitCheckoutError
        """
        logs: List[str] = []

        base_temp = ensure_base_temp_dir(self.base_temp_dir)
        temp_root = Path(tempfile.mkdtemp(prefix=prefix, dir=base_temp))
        repo_dir = temp_root / "repo"

        logs.append(f"Клонируем репозиторий {url!r} во временную папку {repo_dir}")

        repo_obj: Optional[GitRepo] = None
        try:
            try:
                repo_obj = GitRepo.clone_from(url, repo_dir)
            except GitCommandError as e:
                logs.append(str(e))
                raise GitCloneError(repository=url, target=str(repo_dir), logs=logs) from e

            if pr_number:
                refspec = f"pull/{pr_number}/head:{branch}"
                logs.append(f"Забираем ветку {refspec} для {url} в {repo_dir}")
                try:
                    repo_obj.remote("origin").fetch(refspec)
                except (GitCommandError, ValueError) as e:
                    logs.append(str(e))
                    raise GitFetchError(refspec, url, str(repo_dir), logs=logs) from e

            if revision:
                logs.append(f"checkout ревизии {revision}")
                try:
                    repo_obj.git.checkout(revision)
                except GitCommandError as e:
                    logs.append(str(e))
                    raise GitCheckoutError(revision, logs=logs) from e
        except (GitCloneError, GitFetchError, GitCheckoutError):
            shutil.rmtree(temp_root, ignore_errors=True)
            raise
        finally:
            # Явно закрываем repo_obj, чтобы на Windows не оставались залоченные файлы
            if repo_obj is not None:
                repo_obj.close()

        logs.append(f"Репозиторий готов в {repo_dir}")
        return LocalRepo(repo_path=repo_dir, logs=logs, temp_root=temp_root)

    def from_existing_path(self, path: PathLike) -> LocalRepo:
        """
        Использует уже существующую директорию как рабочую копию.

        :raises GitLocalPathError: если путь не существует или не является директорией.
        """
        logs: List[str] = []

        repo_path = Path(path)
        logs.append(f"Используем существующий путь как репозиторий: {repo_path}")

        if not repo_path.is_dir():
            logs.append("Ошибка: указанный путь не существует или не является директорией.")
            raise GitLocalPathError(path=str(repo_path), logs=logs)

        # temp_root не задан: cleanup() не удалит реальный проект
        return LocalRepo(repo_path=repo_path, logs=logs)

    def discover(self, path: PathLike) -> Tuple[GitRepository, str]:
        """
        Определяет репозиторий (по remote origin или первому remote) и текущую ветку.

        Для detached HEAD ветка возвращается пустой.

        :raises GitLocalPathError: если path не git-репозиторий.
        """
        logs: List[str] = []
        try:
            repo_obj = GitRepo(path, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            logs.append(repr(e))
            raise GitLocalPathError(path=str(path), logs=logs) from e

        try:
            remotes = {r.name: r for r in repo_obj.remotes}
            remote = remotes.get("origin") or next(iter(remotes.values()), None)
            url = remote.url if remote is not None else ""
            git_info = parse_git_url(url) if url else GitRepository()

            try:
                branch = repo_obj.active_branch.name
            except TypeError:
                # detached HEAD: ветку должен передать вызывающий
                branch = ""
        finally:
            repo_obj.close()

        return git_info, branch
