"""
Runtime configuration for the Click integration.

Values are read from the environment once (a local .env is honoured) and handed
to components explicitly, so tests can build their own ClickSettings with fixed
vectors instead of patching globals.
"""
import os
import warnings
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

DEFAULT_API_BASE_URL = "https://api.click.uz/v2/merchant/"


class ClickSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    service_id: int = 0
    merchant_id: Optional[int] = None
    merchant_user_id: Optional[int] = None
    secret_key: str = ""
    api_base_url: str = DEFAULT_API_BASE_URL
    api_timeout: float = 10.0
    internal_api_key: str = "insecure-default-change-me"


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    return int(raw) if raw else None


@lru_cache
def get_settings() -> ClickSettings:
    load_dotenv()

    secret_key = os.getenv("CLICK_SECRET_KEY", "")
    if not secret_key:
        warnings.warn(
            "CLICK_SECRET_KEY is not set. Every Click callback will fail signature checks.",
            stacklevel=2,
        )

    internal_api_key = os.getenv("INTERNAL_API_KEY", "")
    if not internal_api_key:
        warnings.warn(
            "INTERNAL_API_KEY is not set. Using an insecure default. "
            "Set this env var in production!",
            stacklevel=2,
        )
        internal_api_key = "insecure-default-change-me"

    return ClickSettings(
        service_id=int(os.getenv("CLICK_SERVICE_ID", "0")),
        merchant_id=_optional_int("CLICK_MERCHANT_ID"),
        merchant_user_id=_optional_int("CLICK_MERCHANT_USER_ID"),
        secret_key=secret_key,
        api_base_url=os.getenv("CLICK_API_BASE_URL", DEFAULT_API_BASE_URL),
        api_timeout=float(os.getenv("CLICK_API_TIMEOUT", "10.0")),
        internal_api_key=internal_api_key,
    )
