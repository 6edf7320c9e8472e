"""
Gateway upstream module.

Clients for the external services the gateway talks to: the GitHub Actions
API (workflow runs and job branches), the Telegram Bot API, the completion
service and the optional transcription service.
"""

from .completion import AnthropicCompletionService, CompletionService
from .github import WorkflowClient
from .jobs import create_job
from .telegram import TelegramTransport
from .transcription import WhisperTranscriber

__all__ = [
    "AnthropicCompletionService",
    "CompletionService",
    "TelegramTransport",
    "WhisperTranscriber",
    "WorkflowClient",
    "create_job",
]
