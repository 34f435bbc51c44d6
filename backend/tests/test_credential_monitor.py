import base64
import datetime
import json
import logging

import jwt
import pytest

from app.engine.credential import CredentialMonitor, decode_expiry
from app.errors import ErrorKind, FetchError

NOW = datetime.datetime(2026, 3, 10, 12, 0, tzinfo=datetime.UTC)
SIGNING_KEY = "noderank-test-signing-key-0123456789"


def make_token(expires_at: datetime.datetime | float) -> str:
    exp = expires_at if isinstance(expires_at, float) else int(expires_at.timestamp())
    return jwt.encode({"sub": "node-operator", "exp": exp}, SIGNING_KEY, algorithm="HS256")


def raw_token(claims_json: str) -> str:
    def encode(raw: bytes) -> str:
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    header = encode(json.dumps({"alg": "HS256", "typ": "JWT"}).encode("utf-8"))
    return f"{header}.{encode(claims_json.encode('utf-8'))}.c2ln"


class TokenHolder:
    def __init__(self, token: str) -> None:
        self.token = token

    def __call__(self) -> str:
        return self.token


def warnings_from(caplog) -> list[logging.LogRecord]:
    return [
        record
        for record in caplog.records
        if record.name == "app.engine.credential" and record.levelno == logging.WARNING
    ]


def test_decode_expiry_reads_exp_claim() -> None:
    expires_at = NOW + datetime.timedelta(days=10)
    assert decode_expiry(make_token(expires_at)) == expires_at


@pytest.mark.parametrize(
    "token",
    [
        "",
        "abc",
        "a.bm90anNvbg.c",
        raw_token("not json"),
        raw_token("null"),
        raw_token('{"sub": "x"}'),
        raw_token('{"exp": "soon"}'),
        raw_token('{"exp": true}'),
    ],
)
def test_decode_expiry_rejects_garbage(token: str) -> None:
    with pytest.raises(FetchError) as excinfo:
        decode_expiry(token)
    assert excinfo.value.kind is ErrorKind.CREDENTIAL_INVALID


@pytest.mark.parametrize("exp", [1e20, -1e20])
def test_decode_expiry_rejects_out_of_range_exp(exp: float) -> None:
    with pytest.raises(FetchError) as excinfo:
        decode_expiry(make_token(exp))
    assert excinfo.value.kind is ErrorKind.CREDENTIAL_INVALID


def test_out_of_range_exp_is_a_skipped_tick() -> None:
    monitor = CredentialMonitor(TokenHolder(make_token(1e20)), clock=lambda: NOW)

    assert monitor.check() is False
    assert monitor.notified is False


def test_status_reports_expiry_and_renewal_hint() -> None:
    expires_at = NOW + datetime.timedelta(days=12, hours=3)
    monitor = CredentialMonitor(TokenHolder(make_token(expires_at)), clock=lambda: NOW)

    status = monitor.status()

    assert status["days_until_expiry"] == 12
    assert status["expires_at"] == expires_at.isoformat()
    assert "NODERANK_RANKING__API_TOKEN" in status["renewal_instructions"]


def test_status_raises_for_undecodable_token() -> None:
    monitor = CredentialMonitor(TokenHolder("not-a-jwt"), clock=lambda: NOW)

    with pytest.raises(FetchError):
        monitor.status()


def test_warns_once_then_resets_after_rotation(caplog) -> None:
    caplog.set_level(logging.WARNING)
    holder = TokenHolder(make_token(NOW + datetime.timedelta(days=10)))
    monitor = CredentialMonitor(holder, threshold_days=30, clock=lambda: NOW)

    assert monitor.check() is True
    assert monitor.notified is True
    assert monitor.check() is False
    assert len(warnings_from(caplog)) == 1
    assert "10 day(s)" in warnings_from(caplog)[0].getMessage()

    holder.token = make_token(NOW + datetime.timedelta(days=60))
    assert monitor.check() is False
    assert monitor.notified is False

    holder.token = make_token(NOW + datetime.timedelta(days=5))
    assert monitor.check() is True
    assert len(warnings_from(caplog)) == 2


def test_expiry_today_skips_notification(caplog) -> None:
    caplog.set_level(logging.WARNING)
    holder = TokenHolder(make_token(NOW + datetime.timedelta(hours=2)))
    monitor = CredentialMonitor(holder, threshold_days=30, clock=lambda: NOW)

    assert monitor.check() is False
    assert monitor.notified is False
    assert warnings_from(caplog) == []


def test_today_follows_the_clock() -> None:
    expires_at = NOW + datetime.timedelta(days=3)
    holder = TokenHolder(make_token(expires_at))
    clock_value = {"now": NOW}
    monitor = CredentialMonitor(holder, threshold_days=30, clock=lambda: clock_value["now"])

    clock_value["now"] = expires_at - datetime.timedelta(hours=1)
    assert monitor.check() is False

    clock_value["now"] = NOW
    assert monitor.check() is True


def test_undecodable_token_is_a_skipped_tick() -> None:
    holder = TokenHolder(make_token(NOW + datetime.timedelta(days=10)))
    monitor = CredentialMonitor(holder, threshold_days=30, clock=lambda: NOW)
    assert monitor.check() is True

    holder.token = "not-a-jwt"
    assert monitor.check() is False
    assert monitor.notified is True


def test_exactly_threshold_days_warns() -> None:
    holder = TokenHolder(make_token(NOW + datetime.timedelta(days=30, hours=1)))
    monitor = CredentialMonitor(holder, threshold_days=30, clock=lambda: NOW)

    assert monitor.check() is True
