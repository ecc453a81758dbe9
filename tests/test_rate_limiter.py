import asyncio
import uuid

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from app.utils import rate_limiter as rate_limiter_module
from app.utils.auth import LEARNER, create_token
from app.utils.rate_limiter import RateLimiter


class Clock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock(monkeypatch):
    clock = Clock()
    monkeypatch.setattr(rate_limiter_module.time, "time", clock)
    return clock


def make_request(ip="10.0.0.1", token=None):
    headers = [(b"authorization", f"Bearer {token}".encode())] if token else []
    return Request({"type": "http", "headers": headers, "client": (ip, 1234)})


def hit(limiter, request):
    asyncio.run(limiter.check_rate_limit(request))


def test_minute_limit_returns_429(clock):
    limiter = RateLimiter(requests_per_minute=3, requests_per_hour=100)
    for _ in range(3):
        hit(limiter, make_request())

    with pytest.raises(HTTPException) as excinfo:
        hit(limiter, make_request())
    assert excinfo.value.status_code == 429
    assert excinfo.value.detail["retry_after"] == 60

    clock.now += 61
    hit(limiter, make_request())


def test_clients_are_limited_separately(clock):
    limiter = RateLimiter(requests_per_minute=1, requests_per_hour=100)
    hit(limiter, make_request(ip="10.0.0.1"))
    hit(limiter, make_request(ip="10.0.0.2"))

    with pytest.raises(HTTPException):
        hit(limiter, make_request(ip="10.0.0.1"))


def test_bearer_subject_is_the_client_key(clock):
    limiter = RateLimiter(requests_per_minute=1, requests_per_hour=100)
    token = create_token(uuid.uuid4(), LEARNER)

    hit(limiter, make_request(ip="10.0.0.1", token=token))
    with pytest.raises(HTTPException):
        hit(limiter, make_request(ip="10.0.0.2", token=token))


def test_idle_clients_are_forgotten(clock):
    limiter = RateLimiter(requests_per_minute=10, requests_per_hour=100)
    for i in range(500):
        hit(limiter, make_request(ip=f"10.1.{i // 256}.{i % 256}"))
    assert len(limiter.history) == 500

    clock.now += 2 * 3600
    hit(limiter, make_request(ip="10.9.9.9"))

    assert list(limiter.history) == ["ip:10.9.9.9"]
