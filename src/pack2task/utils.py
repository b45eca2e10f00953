import re
from typing import Dict, List, Optional

import click


def info(text: str) -> str:
    """Подсвечивает имя объекта / путь в выводе консоли."""
    return click.style(str(text), fg="cyan")


def log(logs: List[str], message: str) -> None:
    """Пишет строку в накопленные логи и дублирует её в консоль."""
    logs.append(click.unstyle(message))
    click.echo(message)


def warn(warnings: List[str], message: str) -> None:
    """То же, что log(), но для предупреждений (идут в stderr)."""
    warnings.append(click.unstyle(message))
    click.echo(click.style("WARNING: ", fg="yellow") + message, err=True)


_INVALID_NAME_CHARS = re.compile(r"[^a-z0-9-]+")
_DASHES = re.compile(r"-{2,}")


def to_valid_name(name: str) -> str:
    """
    Приводит строку к допустимому имени Kubernetes-объекта:
    нижний регистр, всё кроме [a-z0-9-] заменяется на '-', повторы схлопываются.
    """
    answer = _INVALID_NAME_CHARS.sub("-", name.lower())
    answer = _DASHES.sub("-", answer)
    return answer.strip("-")


def merge_maps(*maps: Optional[Dict[str, str]]) -> Dict[str, str]:
    answer: Dict[str, str] = {}
    for m in maps:
        if m:
            answer.update(m)
    return answer
