from .core import GitSource
from .models import LocalRepo
from .utils import parse_git_url

from .exceptions import (
    GitExceptions,
    GitCloneError,
    GitFetchError,
    GitCheckoutError,
    GitLocalPathError,
)

__all__ = [
    "GitSource",
    "LocalRepo",
    "parse_git_url",
    "GitExceptions",
    "GitCloneError",
    "GitFetchError",
    "GitCheckoutError",
    "GitLocalPathError",
]
