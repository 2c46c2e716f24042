"""
Click callback endpoints.

Click only inspects the response body, so these routes always answer 200 with
a protocol error code. They are authenticated by the request signature, not by
the internal API key. The return URL is where Click sends the user back; it
only triggers a status sync.
"""
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.formparsers import MultiPartException

from services.payment_service.service import PaymentService
from shared.config.database import get_db
from shared.config.settings import ClickSettings, get_settings

from .client import ClickApiClient, GatewayError, get_click_client
from .schemas import ClickCallback, ClickResponse
from .service import ClickCallbackService

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Click callbacks"])

# Mounted at the site root: Click sends the user back to /payment/callback
return_router = APIRouter(prefix="/payment/callback", tags=["Click return URL"])


def get_callback_service(settings: ClickSettings = Depends(get_settings)) -> ClickCallbackService:
    return ClickCallbackService(settings)


async def _parse_callback(request: Request) -> tuple[Optional[ClickCallback], str]:
    content_type = request.headers.get("content-type", "")
    try:
        if "application/json" in content_type:
            body = await request.json()
        else:
            body = dict(await request.form())
    except (ValueError, MultiPartException) as e:
        return None, f"unreadable body: {e}"

    if not isinstance(body, dict):
        return None, "body is not an object"
    try:
        return ClickCallback.model_validate(body), ""
    except ValidationError as e:
        return None, f"invalid fields: {e.error_count()} error(s)"


@router.post("/", response_model=ClickResponse, response_model_exclude_none=True)
async def click_callback(
    request: Request,
    db: AsyncSession = Depends(get_db),
    service: ClickCallbackService = Depends(get_callback_service),
):
    """Single URL for both phases; dispatches on `action`."""
    callback, reason = await _parse_callback(request)
    if callback is None:
        return service.malformed(reason)
    return await service.handle(db, callback)


@router.post("/prepare", response_model=ClickResponse, response_model_exclude_none=True)
async def click_prepare(
    request: Request,
    db: AsyncSession = Depends(get_db),
    service: ClickCallbackService = Depends(get_callback_service),
):
    callback, reason = await _parse_callback(request)
    if callback is None:
        return service.malformed(reason)
    return await service.prepare(db, callback)


@router.post("/complete", response_model=ClickResponse, response_model_exclude_none=True)
async def click_complete(
    request: Request,
    db: AsyncSession = Depends(get_db),
    service: ClickCallbackService = Depends(get_callback_service),
):
    callback, reason = await _parse_callback(request)
    if callback is None:
        return service.malformed(reason)
    return await service.complete(db, callback)


@return_router.get("", response_class=PlainTextResponse)
async def click_return(
    transaction_param: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    gateway: ClickApiClient = Depends(get_click_client),
):
    """Where Click redirects the user after checkout. Syncs the payment and
    always answers "OK"; the page is user-facing, so gateway errors are only logged.
    """
    if transaction_param:
        try:
            await PaymentService.sync_by_merchant_trans_id(db, transaction_param, gateway)
        except GatewayError as e:
            logger.warning("click_return_sync_failed", merchant_trans_id=transaction_param,
                           status_code=e.status_code, error=str(e))
    return "OK"


@return_router.post("", response_model=ClickResponse, response_model_exclude_none=True)
async def click_return_post(
    request: Request,
    db: AsyncSession = Depends(get_db),
    service: ClickCallbackService = Depends(get_callback_service),
):
    """Some merchant cabinets post callbacks to the return URL too."""
    return await click_callback(request, db, service)
