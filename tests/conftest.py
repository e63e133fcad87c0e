import itertools
import json

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from registration_api.database import build_session_factory, init_models
from registration_api.services.payment_gateway import RazorpayGateway

TEST_KEY_ID = "rzp_test_key"
TEST_SECRET = "rzp_test_secret"


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeRazorpay:
    """Records order requests and answers like the Razorpay orders endpoint."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.fail_with: int | None = None
        self._ids = itertools.count(1)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"error": {"description": "boom"}})
        body = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "id": f"order_{next(self._ids):04d}",
                "entity": "order",
                "amount": body["amount"],
                "currency": body["currency"],
                "receipt": body["receipt"],
                "status": "created",
            },
        )

    @property
    def order_payloads(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def fake_razorpay():
    return FakeRazorpay()


@pytest.fixture
def gateway(fake_razorpay):
    return RazorpayGateway(
        key_id=TEST_KEY_ID,
        key_secret=TEST_SECRET,
        base_url="https://razorpay.invalid",
        transport=httpx.MockTransport(fake_razorpay.handler),
    )


def make_engine(tmp_path):
    # NullPool: every checkout opens a fresh aiosqlite connection, so separate
    # sessions really are separate SQLite connections competing for locks.
    return create_async_engine(
        f"sqlite+aiosqlite:///{(tmp_path / 'registrations.db').as_posix()}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )


@pytest.fixture
async def session_factory(tmp_path):
    engine = make_engine(tmp_path)
    await init_models(engine)
    yield build_session_factory(engine)
    await engine.dispose()


def member(index: int, role: str = "Member", **overrides) -> dict:
    data = {
        "name": f"Member {index}",
        "email": f"member{index}@example.com",
        "phone": f"98765432{index:02d}",
        "college": "Example Institute of Technology",
        "role": role,
    }
    data.update(overrides)
    return data


def team_members(count: int) -> list[dict]:
    return [member(i, role="Team Lead" if i == 1 else "Member") for i in range(1, count + 1)]


def with_roll_numbers(members: list[dict]) -> list[dict]:
    return [dict(m, rollNumber=f"ROLL{i:03d}") for i, m in enumerate(members, start=1)]
