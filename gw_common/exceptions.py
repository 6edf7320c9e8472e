"""
Error taxonomy shared by the gateway components.

Configuration errors are raised when a call path needs a credential or
identifier that is not set. Upstream errors wrap a non-2xx response from the
CI system, the chat provider or the completion service. Transient errors
(timeouts, dropped connections) are a subclass so that idempotent reads can
retry them selectively.
"""


class GatewayError(Exception):
    """Base class for gateway errors."""


class ConfigurationError(GatewayError):
    """A required setting (token, owner, repo, chat id...) is missing."""


class UpstreamError(GatewayError):
    """An external service returned a non-success response."""

    def __init__(self, service: str, http_status: int | None, body: str = ""):
        self.service = service
        self.http_status = http_status
        self.body = body
        super().__init__(f"{service} API error: {http_status} {body}".rstrip())


class TransientUpstreamError(UpstreamError):
    """The request timed out or the connection failed before a response."""

    def __init__(self, service: str, reason: str):
        super().__init__(service, None, reason)
