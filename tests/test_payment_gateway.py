import base64
import hashlib
import hmac

import httpx
import pytest

from registration_api.errors import PaymentGatewayError, PaymentGatewayUnavailable
from registration_api.services import payment_gateway
from registration_api.services.payment_gateway import (
    RazorpayGateway,
    compute_signature,
    get_payment_gateway,
    load_gateway,
)

from conftest import TEST_KEY_ID, TEST_SECRET


def test_signature_is_hmac_sha256_over_order_and_payment():
    expected = hmac.new(
        TEST_SECRET.encode(), b"order_abc|pay_xyz", hashlib.sha256
    ).hexdigest()
    assert compute_signature("order_abc", "pay_xyz", TEST_SECRET) == expected


def test_verify_signature_accepts_only_the_exact_digest(gateway):
    signature = gateway.sign("order_abc", "pay_xyz")

    assert gateway.verify_signature("order_abc", "pay_xyz", signature) is True
    assert gateway.verify_signature("order_abc", "pay_xyz", signature[:-1]) is False
    assert gateway.verify_signature("order_abc", "pay_xyz", signature + "0") is False
    assert gateway.verify_signature("order_abc", "pay_xyz", signature.upper()) is False
    assert gateway.verify_signature("order_abc", "pay_xyz", "") is False
    # swapped identifiers must not verify
    assert gateway.verify_signature("pay_xyz", "order_abc", signature) is False


def test_signature_from_another_secret_is_rejected(gateway):
    forged = compute_signature("order_abc", "pay_xyz", "not-the-secret")
    assert gateway.verify_signature("order_abc", "pay_xyz", forged) is False


@pytest.mark.anyio
async def test_create_order_posts_minor_units_with_basic_auth(gateway, fake_razorpay):
    order = await gateway.create_order(10000, "INR", "rcpt_1")

    assert order.id == "order_0001"
    assert order.amount == 10000
    assert order.currency == "INR"

    request = fake_razorpay.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/v1/orders"
    expected_auth = base64.b64encode(f"{TEST_KEY_ID}:{TEST_SECRET}".encode()).decode()
    assert request.headers["Authorization"] == f"Basic {expected_auth}"
    assert fake_razorpay.order_payloads[0] == {
        "amount": 10000,
        "currency": "INR",
        "receipt": "rcpt_1",
        "payment_capture": 1,
    }


@pytest.mark.anyio
async def test_create_order_maps_http_errors(gateway, fake_razorpay):
    fake_razorpay.fail_with = 500
    with pytest.raises(PaymentGatewayError):
        await gateway.create_order(100, "INR", "rcpt_2")


@pytest.mark.anyio
async def test_create_order_maps_timeouts():
    def _timeout(request):
        raise httpx.ReadTimeout("timed out", request=request)

    gateway = RazorpayGateway(
        key_id=TEST_KEY_ID,
        key_secret=TEST_SECRET,
        timeout=0.5,
        transport=httpx.MockTransport(_timeout),
    )
    with pytest.raises(PaymentGatewayError) as excinfo:
        await gateway.create_order(100, "INR", "rcpt_3")
    assert excinfo.value.status_code == 502


@pytest.mark.anyio
async def test_create_order_rejects_malformed_payload():
    gateway = RazorpayGateway(
        key_id=TEST_KEY_ID,
        key_secret=TEST_SECRET,
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"entity": "order"})),
    )
    with pytest.raises(PaymentGatewayError):
        await gateway.create_order(100, "INR", "rcpt_4")


def test_load_gateway_reports_missing_configuration():
    setup = load_gateway({"RAZORPAY_KEY_ID": "rzp_live_x"})
    assert setup.configured is False
    assert setup.gateway is None
    assert setup.missing == ("RAZORPAY_SECRET",)

    assert load_gateway({}).missing == ("RAZORPAY_KEY_ID", "RAZORPAY_SECRET")


def test_load_gateway_accepts_key_secret_alias_and_timeout():
    setup = load_gateway(
        {
            "RAZORPAY_KEY_ID": "rzp_live_x",
            "RAZORPAY_KEY_SECRET": "s3cret",
            "RAZORPAY_TIMEOUT_SECONDS": "2.5",
            "RAZORPAY_BASE_URL": "https://example.com/",
        }
    )
    assert setup.configured is True
    assert setup.gateway.timeout == 2.5
    assert setup.gateway.base_url == "https://example.com"
    assert setup.gateway.verify_signature("o", "p", compute_signature("o", "p", "s3cret"))


def test_get_payment_gateway_raises_when_unconfigured(monkeypatch):
    monkeypatch.setattr(payment_gateway, "_setup", load_gateway({}))
    with pytest.raises(PaymentGatewayUnavailable) as excinfo:
        get_payment_gateway()
    assert excinfo.value.status_code == 503


def test_get_payment_gateway_returns_configured_client(monkeypatch):
    setup = load_gateway({"RAZORPAY_KEY_ID": "k", "RAZORPAY_SECRET": "s"})
    monkeypatch.setattr(payment_gateway, "_setup", setup)
    assert get_payment_gateway() is setup.gateway
