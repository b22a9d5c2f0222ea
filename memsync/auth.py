"""Access token helpers for the CLI and the sync controller."""

from typing import Any, Callable, Optional

from .config import config
from .exceptions import DriveAuthenticationError
from .output import OutputFormatter


def static_token_provider(token: Optional[str]) -> Callable[[], str]:
    """Build a token provider around a fixed token.

    Args:
        token: Access token, may be None

    Returns:
        Callable returning the token, or raising DriveAuthenticationError when
        there is none
    """

    def provider() -> str:
        if not token:
            raise DriveAuthenticationError("No access token configured")
        return token

    return provider


def require_access_token(ctx: Any, out: OutputFormatter) -> str:
    """Resolve the access token from --token or the config, or exit.

    Args:
        ctx: Click context
        out: Output formatter

    Returns:
        The access token
    """
    token = ctx.obj.get("token") or config.access_token
    if not token:
        out.error("No access token found. Run 'memsync init' or pass --token.")
        ctx.exit(1)
    return token
