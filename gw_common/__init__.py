"""
Gateway common module.

This module contains shared domain models, the error taxonomy and the
conversation store interface used across the gateway components (server,
scheduler, upstream clients, persistence).

The common module has no dependencies on other gw_* modules, making it
a pure domain layer that can be imported by any component.
"""

from .exceptions import (
    ConfigurationError,
    GatewayError,
    TransientUpstreamError,
    UpstreamError,
)
from .models import ChatMessage, Job, WorkflowRun, extract_job_id
from .repository import ConversationStore

__all__ = [
    "ChatMessage",
    "ConfigurationError",
    "ConversationStore",
    "GatewayError",
    "Job",
    "TransientUpstreamError",
    "UpstreamError",
    "WorkflowRun",
    "extract_job_id",
]
