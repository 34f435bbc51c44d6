from __future__ import annotations

import datetime
import logging
from collections.abc import Callable
from typing import Any

import jwt

from app.errors import ErrorKind, FetchError

logger = logging.getLogger(__name__)

_RENEWAL_HINT = (
    "Create a new API key with the ranking provider and set "
    "NODERANK_RANKING__API_TOKEN before the current one expires."
)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def decode_expiry(token: str) -> datetime.datetime:
    """Read the ``exp`` claim of a JWT. The signature is not verified."""
    try:
        claims = jwt.decode(token or "", options={"verify_signature": False})
    except jwt.PyJWTError as exc:
        raise FetchError(ErrorKind.CREDENTIAL_INVALID, f"unreadable token: {exc}") from exc
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)) or isinstance(exp, bool):
        raise FetchError(ErrorKind.CREDENTIAL_INVALID, "token has no numeric exp claim")
    try:
        return datetime.datetime.fromtimestamp(exp, datetime.UTC)
    except (OverflowError, OSError, ValueError) as exc:
        raise FetchError(
            ErrorKind.CREDENTIAL_INVALID, f"token exp claim out of range: {exp!r}"
        ) from exc


def days_until(expires_at: datetime.datetime, now: datetime.datetime) -> int:
    hours_left = (expires_at - now).total_seconds() / 3600
    return int(hours_left // 24)


class CredentialMonitor:
    """Warns once when the bearer token gets close to its expiry.

    The warning is debounced until the token is replaced by one that expires
    beyond the threshold again.
    """

    def __init__(
        self,
        token: Callable[[], str | None],
        threshold_days: int = 30,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        self._token = token
        self.threshold_days = threshold_days
        self._clock = clock
        self.notified = False

    def status(self) -> dict[str, Any]:
        """Expiry details of the current token. Raises ``FetchError`` when undecodable."""
        expires_at = decode_expiry(self._token() or "")
        return {
            "days_until_expiry": days_until(expires_at, self._clock()),
            "expires_at": expires_at.isoformat(),
            "renewal_instructions": _RENEWAL_HINT,
        }

    def check(self) -> bool:
        """Run one tick. Returns True when a warning was emitted."""
        try:
            expires_at = decode_expiry(self._token() or "")
        except FetchError as exc:
            logger.error("credential check skipped: %s", exc.message)
            return False

        now = self._clock()
        if expires_at.date() == now.date():
            return False

        days_left = days_until(expires_at, now)

        if days_left > self.threshold_days:
            self.notified = False
            return False
        if self.notified:
            return False

        logger.warning(
            "ranking API token expires in %d day(s) on %s. %s",
            days_left,
            expires_at.date().isoformat(),
            _RENEWAL_HINT,
        )
        self.notified = True
        return True
