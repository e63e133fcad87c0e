from __future__ import annotations

import hashlib
import hmac
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import httpx

from registration_api.errors import PaymentGatewayError, PaymentGatewayUnavailable

_LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.razorpay.com"
DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass(slots=True)
class Order:
    id: str
    amount: int
    currency: str
    receipt: Optional[str] = None
    status: str = "created"
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Order":
        try:
            return cls(
                id=str(payload["id"]),
                amount=int(payload["amount"]),
                currency=str(payload["currency"]),
                receipt=payload.get("receipt"),
                status=str(payload.get("status", "created")),
                raw=dict(payload),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise PaymentGatewayError("Payment gateway returned a malformed order") from exc

    def as_dict(self) -> dict[str, Any]:
        data = dict(self.raw)
        data.update(
            {
                "id": self.id,
                "amount": self.amount,
                "currency": self.currency,
                "receipt": self.receipt,
                "status": self.status,
            }
        )
        return data


def compute_signature(order_id: str, payment_id: str, secret: str) -> str:
    """HMAC-SHA256 hex digest over ``"<order_id>|<payment_id>"``."""

    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class RazorpayGateway:
    """Order creation and callback signature checks against the Razorpay REST API."""

    def __init__(
        self,
        *,
        key_id: str,
        key_secret: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not key_id or not key_secret:
            raise ValueError("key_id and key_secret are required")
        self.key_id = key_id
        self._key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    async def create_order(self, amount_minor_units: int, currency: str, receipt: str) -> Order:
        """Create an auto-captured order; raises PaymentGatewayError on any failure."""

        payload = {
            "amount": amount_minor_units,
            "currency": currency,
            "receipt": receipt,
            "payment_capture": 1,
        }
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                auth=(self.key_id, self._key_secret),
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.post("/v1/orders", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as exc:
            _LOGGER.error("Order creation timed out after %.1fs (receipt=%s)", self.timeout, receipt)
            raise PaymentGatewayError("Payment gateway timed out") from exc
        except httpx.HTTPStatusError as exc:
            _LOGGER.error(
                "Order creation rejected with HTTP %s (receipt=%s)",
                exc.response.status_code,
                receipt,
            )
            raise PaymentGatewayError("Payment gateway rejected the order request") from exc
        except (httpx.HTTPError, ValueError) as exc:
            _LOGGER.error("Order creation failed (receipt=%s): %s", receipt, exc)
            raise PaymentGatewayError() from exc

        order = Order.from_payload(data)
        _LOGGER.info("Created order %s for %s %s", order.id, order.amount, order.currency)
        return order

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------
    def sign(self, order_id: str, payment_id: str) -> str:
        return compute_signature(order_id, payment_id, self._key_secret)

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        expected = self.sign(order_id, payment_id)
        return hmac.compare_digest(expected.encode("utf-8"), (signature or "").encode("utf-8"))


@dataclass(frozen=True)
class GatewaySetup:
    """Outcome of loading the gateway from configuration.

    Exactly one of ``gateway`` / ``missing`` is meaningful: a configured setup
    holds the client, an unconfigured one lists the variables that were absent.
    """

    gateway: Optional[RazorpayGateway] = None
    missing: tuple[str, ...] = ()

    @property
    def configured(self) -> bool:
        return self.gateway is not None


def load_gateway(env: Mapping[str, str]) -> GatewaySetup:
    key_id = (env.get("RAZORPAY_KEY_ID") or "").strip()
    key_secret = (env.get("RAZORPAY_SECRET") or env.get("RAZORPAY_KEY_SECRET") or "").strip()

    missing = []
    if not key_id:
        missing.append("RAZORPAY_KEY_ID")
    if not key_secret:
        missing.append("RAZORPAY_SECRET")
    if missing:
        return GatewaySetup(missing=tuple(missing))

    try:
        timeout = float(env.get("RAZORPAY_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS))
    except ValueError:
        timeout = DEFAULT_TIMEOUT_SECONDS

    return GatewaySetup(
        gateway=RazorpayGateway(
            key_id=key_id,
            key_secret=key_secret,
            base_url=env.get("RAZORPAY_BASE_URL") or DEFAULT_BASE_URL,
            timeout=timeout,
        )
    )


_setup: Optional[GatewaySetup] = None


def get_gateway_setup() -> GatewaySetup:
    global _setup
    if _setup is not None:
        return _setup

    _setup = load_gateway(os.environ)
    if _setup.configured:
        _LOGGER.info("Razorpay gateway configured.")
    else:
        _LOGGER.warning(
            "Razorpay gateway not configured; missing %s. Payment endpoints will respond 503.",
            ", ".join(_setup.missing),
        )
    return _setup


def get_payment_gateway() -> RazorpayGateway:
    """FastAPI dependency: the configured gateway, or 503 when unconfigured."""

    setup = get_gateway_setup()
    if setup.gateway is None:
        raise PaymentGatewayUnavailable()
    return setup.gateway
