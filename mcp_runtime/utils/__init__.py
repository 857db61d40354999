"""Utility modules: structured logging."""

from mcp_runtime.utils.logging import get_logger, set_request_id, setup_logging

__all__ = [
    "setup_logging",
    "get_logger",
    "set_request_id",
]
