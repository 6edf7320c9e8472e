"""
Authentication utilities for the gateway.

First-party routes require a static API key in the `x-api-key` header.
The two inbound webhooks authenticate with their own shared secrets, each
with different failure semantics (see gw_server.app).
"""

import secrets
from collections.abc import Callable

from fastapi import Depends, Header, HTTPException

from .config import GatewayConfig

API_KEY_HEADER = "x-api-key"
TELEGRAM_SECRET_HEADER = "x-telegram-bot-api-secret-token"
GITHUB_SECRET_HEADER = "x-github-webhook-secret-token"


def generate_api_key() -> str:
    """
    Generate a new API key with format: gw_<40 random chars>.

    The key uses URL-safe base64 encoding with 240 bits of entropy.

    Example:
        >>> key = generate_api_key()
        >>> key.startswith("gw_")
        True
        >>> len(key)
        43
    """
    random_part = secrets.token_urlsafe(30)[:40]
    return f"gw_{random_part}"


def secret_matches(expected: str | None, provided: str | None) -> bool:
    """
    Compare a configured secret with the value a caller sent.

    Uses a constant-time comparison. An unconfigured secret never matches.
    """
    if not expected or provided is None:
        return False
    return secrets.compare_digest(expected.encode(), provided.encode())


def create_api_key_dependency(
    get_config_func: Callable[[], GatewayConfig],
):
    """
    Create the API key dependency with configuration injection.

    Args:
        get_config_func: Function that returns the GatewayConfig instance

    Returns:
        Async function usable as a FastAPI dependency; raises 401 when the
        `x-api-key` header is missing or wrong

    Example:
        require_api_key = create_api_key_dependency(get_config)
        router = APIRouter(dependencies=[Depends(require_api_key)])
    """

    async def require_api_key(
        x_api_key: str | None = Header(default=None),
        config: GatewayConfig = Depends(get_config_func),
    ) -> None:
        if not secret_matches(config.api_key, x_api_key):
            raise HTTPException(status_code=401, detail="Unauthorized")

    return require_api_key
