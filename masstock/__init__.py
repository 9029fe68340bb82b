"""MasStock: batch AI image generation workflows for agencies."""

from .config import MasStockConfig, load_config
from .contracts import WorkflowJob
from .dispatch import ExecutionDispatcher
from .execute import ExecutionWorker
from .persistence import get_repository
from .transports import get_transport

__version__ = "1.0.0"
__all__ = [
    "ExecutionDispatcher",
    "ExecutionWorker",
    "MasStockConfig",
    "WorkflowJob",
    "get_repository",
    "get_transport",
    "load_config",
]
