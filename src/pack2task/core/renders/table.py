from typing import List, Sequence

from pack2task.core.models import Task


def _format_rows(rows: List[List[str]]) -> str:
    widths = [max(len(row[i]) for row in rows) for i in range(len(rows[0]))]
    lines = []
    for row in rows:
        cells = [cell.ljust(widths[i]) for i, cell in enumerate(row)]
        lines.append("  ".join(cells).rstrip())
    return "\n".join(lines)


def render_steps_table(tasks: Sequence[Task]) -> str:
    """
    Таблица шагов для --view: NAME / COMMAND / IMAGE,
    плюс колонка TASK, если задач больше одной.
    """
    show_task = len(tasks) > 1
    rows: List[List[str]] = [
        ["TASK", "NAME", "COMMAND", "IMAGE"] if show_task else ["NAME", "COMMAND", "IMAGE"]
    ]
    for task in tasks:
        for step in task.spec.steps:
            command = " ".join([*step.command, *step.args])
            row = [step.name, command, step.image]
            rows.append([task.metadata.name, *row] if show_task else row)
    return _format_rows(rows)
