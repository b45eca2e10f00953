from typing import List, Optional

from pack2task.exception import Pack2TaskError


class GitExceptions(Pack2TaskError):
    """
    Базовое исключение для работы с Git/репозиториями.

    Дополнительно хранит логи (steps), накопленные во время операции.
    """

    def __init__(
        self,
        description: str = "Something happend when work with Git",
        logs: Optional[List[str]] = None,
    ) -> None:
        super().__init__(description=description, logs=logs)


class GitCloneError(GitExceptions):
    """
    Ошибка при клонировании удалённого репозитория.
    """

    def __init__(
        self,
        repository: str,
        target: str,
        logs: Optional[List[str]] = None,
    ) -> None:
        description = f"failed to clone repository {repository} to directory {target}"
        super().__init__(description=description, logs=logs)
        self.repository = repository
        self.target = target


class GitFetchError(GitExceptions):
    """
    Ошибка при получении ветки pull request'а.
    """

    def __init__(
        self,
        refspec: str,
        repository: str,
        directory: str,
        logs: Optional[List[str]] = None,
    ) -> None:
        description = f"failed to fetch pullrequest {refspec} for {repository} in dir {directory}"
        super().__init__(description=description, logs=logs)
        self.refspec = refspec


class GitCheckoutError(GitExceptions):
    def __init__(self, revision: str, logs: Optional[List[str]] = None) -> None:
        super().__init__(description=f"failed to checkout revision {revision}", logs=logs)
        self.revision = revision


class GitLocalPathError(GitExceptions):
    """
    Ошибка при использовании локального пути до репозитория/проекта.
    """

    def __init__(
        self,
        path: str,
        logs: Optional[List[str]] = None,
    ) -> None:
        description = f"failed to find git information from dir {path}"
        super().__init__(description=description, logs=logs)
        self.path = path
