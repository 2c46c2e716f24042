"""
Internal API key check for operator endpoints (create, sync, reverse).

Click callbacks are authenticated by their own MD5 signature and never pass
through this check.
"""
import secrets

from shared.config.settings import ClickSettings


def verify_api_key(provided_key: str, settings: ClickSettings) -> bool:
    """Verify an API key using constant-time comparison to prevent timing attacks."""
    if not provided_key:
        return False
    return secrets.compare_digest(
        str(provided_key).encode("utf-8"),
        settings.internal_api_key.encode("utf-8"),
    )
