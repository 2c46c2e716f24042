from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader

from shared.config.settings import ClickSettings, get_settings
from .api_key import verify_api_key

# Defines the expected internal service header
api_key_header = APIKeyHeader(name="X-Internal-API-Key", auto_error=False)


async def verify_internal_api_key(
    api_key: str = Depends(api_key_header),
    settings: ClickSettings = Depends(get_settings),
) -> bool:
    """Dependency to validate operator / service-to-service requests."""
    if not verify_api_key(api_key, settings):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing X-Internal-API-Key header"
        )
    return True
