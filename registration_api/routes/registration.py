# registration_api/routes/registration.py

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from registration_api.database import get_db
from registration_api.rate_limiter import enforce_rate_limit
from registration_api.responses import success_body
from registration_api.schemas import RegistrationRequest
from registration_api.services.payment_gateway import RazorpayGateway, get_payment_gateway
from registration_api.services.registration import Pricing, get_pricing, initiate_registration

router = APIRouter(prefix="/registration", tags=["Registration"], dependencies=[Depends(enforce_rate_limit)])


@router.post("", status_code=status.HTTP_201_CREATED, summary="Register a team and open a payment order")
async def register_team(
    registration: RegistrationRequest,
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    pricing: Pricing = Depends(get_pricing),
):
    order = await initiate_registration(db, gateway, registration, pricing)
    return success_body(
        "Team registered. Complete the payment to finalize registration.",
        order.model_dump(by_alias=True),
    )
