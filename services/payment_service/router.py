"""
Operator endpoints for payments. All require X-Internal-API-Key.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from services.click_service.client import ClickApiClient, GatewayError, GatewayUnavailable, get_click_client
from shared.config.database import get_db
from shared.security.dependencies import verify_internal_api_key

from .exceptions import PaymentNotFound, ReversalNotAllowed
from .schemas import PaymentCreate, PaymentResponse, ReversalResponse, SyncResponse
from .service import PaymentService

router = APIRouter(dependencies=[Depends(verify_internal_api_key)])


def _gateway_http_error(e: GatewayError) -> HTTPException:
    if isinstance(e, GatewayUnavailable):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
            headers={"Retry-After": "30"},
        )
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


@router.post("/", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(payment: PaymentCreate, db: AsyncSession = Depends(get_db)):
    return await PaymentService.create_payment(db, payment)


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(payment_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return await PaymentService.get_payment(db, payment_id)
    except PaymentNotFound:
        raise HTTPException(status_code=404, detail="Payment not found")


@router.post("/{payment_id}/sync", response_model=SyncResponse)
async def sync_payment_status(
    payment_id: int,
    db: AsyncSession = Depends(get_db),
    gateway: ClickApiClient = Depends(get_click_client),
):
    try:
        result = await PaymentService.sync_status(db, payment_id, gateway)
    except PaymentNotFound:
        raise HTTPException(status_code=404, detail="Payment not found")
    except GatewayError as e:
        raise _gateway_http_error(e)
    return SyncResponse(
        gateway=result.gateway,
        payment=PaymentResponse.model_validate(result.payment),
        changed=result.changed,
    )


@router.post("/{payment_id}/reverse", response_model=ReversalResponse)
async def reverse_payment(
    payment_id: int,
    db: AsyncSession = Depends(get_db),
    gateway: ClickApiClient = Depends(get_click_client),
):
    try:
        ack, payment = await PaymentService.reverse_payment(db, payment_id, gateway)
    except PaymentNotFound:
        raise HTTPException(status_code=404, detail="Payment not found")
    except ReversalNotAllowed as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except GatewayError as e:
        raise _gateway_http_error(e)
    return ReversalResponse(gateway=ack, payment=PaymentResponse.model_validate(payment))
