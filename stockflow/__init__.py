"""Offline sync core for the Stockflow inventory client."""

__version__ = "0.1.0"

from stockflow.runtime import StockflowRuntime  # noqa: E402
from stockflow.runtime import runtime_scope  # noqa: E402

__all__ = ["__version__", "StockflowRuntime", "runtime_scope"]
