"""Service layer: payment gateway integration and the registration flows."""

from .payment_gateway import GatewaySetup, Order, RazorpayGateway, get_payment_gateway, load_gateway
from .registration import (
    Pricing,
    create_standalone_order,
    get_pricing,
    initiate_registration,
    mark_payment_completed,
    verify_and_finalize,
)

__all__ = [
    "GatewaySetup",
    "Order",
    "Pricing",
    "RazorpayGateway",
    "create_standalone_order",
    "get_payment_gateway",
    "get_pricing",
    "initiate_registration",
    "load_gateway",
    "mark_payment_completed",
    "verify_and_finalize",
]
