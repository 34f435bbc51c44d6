from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    CREDENTIAL_MISSING = "credential_missing"
    CREDENTIAL_INVALID = "credential_invalid"
    TRANSPORT = "transport"
    ADMISSION_DENIED = "admission_denied"
    PARSE_FAILURE = "parse_failure"
    PROCESS_FAILURE = "process_failure"
    COMMAND_FAILURE = "command_failure"
    CONFIG_INVALID = "config_invalid"
    CANCELED = "canceled"


RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.TRANSPORT,
        ErrorKind.ADMISSION_DENIED,
        ErrorKind.PROCESS_FAILURE,
        ErrorKind.COMMAND_FAILURE,
    }
)


class FetchError(Exception):
    """A classified failure of one fetch attempt.

    ``transient`` marks a parse failure that happened together with a transport
    problem (e.g. a truncated body); only those parse failures are retried.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        source: str | None = None,
        transient: bool = False,
    ) -> None:
        self.kind = kind
        self.message = message
        self.source = source
        self.transient = transient
        super().__init__(f"[{kind.value}] {message}")

    @property
    def retryable(self) -> bool:
        if self.kind in RETRYABLE_KINDS:
            return True
        return self.kind is ErrorKind.PARSE_FAILURE and self.transient


class AggregateFetchError(FetchError):
    def __init__(self, errors: dict[str, FetchError], *, source: str | None = None) -> None:
        self.errors = dict(errors)
        details = "; ".join(f"{name}: {error.message}" for name, error in self.errors.items())
        super().__init__(
            ErrorKind.COMMAND_FAILURE,
            f"{len(self.errors)} sub-fetch(es) failed: {details}",
            source=source,
        )

    @property
    def retryable(self) -> bool:
        return any(error.retryable for error in self.errors.values())


class ConfigInvalid(FetchError):
    def __init__(self, message: str) -> None:
        super().__init__(ErrorKind.CONFIG_INVALID, message)


class CredentialMissing(FetchError):
    def __init__(self, message: str) -> None:
        super().__init__(ErrorKind.CREDENTIAL_MISSING, message)


class Canceled(FetchError):
    def __init__(self, message: str = "canceled", *, source: str | None = None) -> None:
        super().__init__(ErrorKind.CANCELED, message, source=source)
