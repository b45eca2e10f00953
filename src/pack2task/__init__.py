"""
pack2task: компилятор build-pack конфигурации в граф Tekton-объектов.

Берёт пайплайн из build pack'а, накладывает локальные переопределения проекта,
разворачивает дерево шагов в плоский список контейнеров, вычисляет версию
и применяет Task / Pipeline / PipelineResource / PipelineRun к кластеру.
"""

__version__ = "0.1.0"
