# registration_api/routes/payments.py

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from registration_api.database import get_db
from registration_api.rate_limiter import enforce_rate_limit
from registration_api.responses import success_body
from registration_api.schemas import CreateOrderRequest, VerifyPaymentRequest
from registration_api.services.payment_gateway import RazorpayGateway, get_payment_gateway
from registration_api.services.registration import create_standalone_order, verify_and_finalize

router = APIRouter(prefix="/razorpay", tags=["Payments"], dependencies=[Depends(enforce_rate_limit)])


@router.post("/create-order", status_code=status.HTTP_201_CREATED)
async def create_order(
    body: CreateOrderRequest,
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    order = await create_standalone_order(gateway, body)
    return order.as_dict()


@router.post("/verify-payment", summary="Verify a payment callback and finalize the team")
async def verify_payment(
    body: VerifyPaymentRequest,
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    result = await verify_and_finalize(db, gateway, body)
    return success_body(
        "Payment verified and team registration completed",
        result.model_dump(by_alias=True, mode="json"),
    )
