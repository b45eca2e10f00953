from .client import ClusterClient, KubectlClient
from .core import Reconciler, RetryPolicy
from .memory import InMemoryClusterClient

__all__ = [
    "ClusterClient",
    "KubectlClient",
    "InMemoryClusterClient",
    "Reconciler",
    "RetryPolicy",
]
