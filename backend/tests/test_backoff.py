import pytest

from app.engine.backoff import BackoffPolicy, next_delay
from app.errors import AggregateFetchError, ErrorKind, FetchError


def no_jitter(low: float, high: float) -> float:
    return 0.0


def test_delay_doubles_per_attempt() -> None:
    policy = BackoffPolicy(base_delay=1.0, max_retries=3)
    error = FetchError(ErrorKind.TRANSPORT, "connection reset")

    delays = [policy.next_delay(attempt, error, jitter=no_jitter) for attempt in range(4)]

    assert delays == [1.0, 2.0, 4.0, None]


def test_jitter_stays_below_one_second() -> None:
    error = FetchError(ErrorKind.ADMISSION_DENIED, "HTTP 429")
    for attempt in range(3):
        delay = next_delay(attempt, error, base_delay=0.5, max_retries=5)
        assert delay is not None
        assert 0.5 * 2**attempt <= delay <= 0.5 * 2**attempt + 1.0


@pytest.mark.parametrize(
    "kind",
    [
        ErrorKind.CREDENTIAL_MISSING,
        ErrorKind.CREDENTIAL_INVALID,
        ErrorKind.CONFIG_INVALID,
        ErrorKind.PARSE_FAILURE,
        ErrorKind.CANCELED,
    ],
)
def test_non_retryable_kinds_stop(kind: ErrorKind) -> None:
    error = FetchError(kind, "nope")
    assert next_delay(0, error, base_delay=1.0, max_retries=3) is None


@pytest.mark.parametrize(
    "kind",
    [
        ErrorKind.TRANSPORT,
        ErrorKind.ADMISSION_DENIED,
        ErrorKind.PROCESS_FAILURE,
        ErrorKind.COMMAND_FAILURE,
    ],
)
def test_retryable_kinds_continue(kind: ErrorKind) -> None:
    error = FetchError(kind, "flaky")
    assert next_delay(0, error, base_delay=1.0, max_retries=3, jitter=no_jitter) == 1.0


def test_parse_failure_with_transport_problem_is_retried() -> None:
    error = FetchError(ErrorKind.PARSE_FAILURE, "truncated response body", transient=True)
    assert next_delay(1, error, base_delay=1.0, max_retries=3, jitter=no_jitter) == 2.0


def test_unclassified_exception_stops() -> None:
    assert next_delay(0, ValueError("boom"), base_delay=1.0, max_retries=3) is None


def test_zero_retries_never_retries() -> None:
    error = FetchError(ErrorKind.TRANSPORT, "down")
    assert BackoffPolicy(max_retries=0).next_delay(0, error) is None


def test_aggregate_error_inherits_retryability() -> None:
    parse_only = AggregateFetchError(
        {
            "channels": FetchError(ErrorKind.PARSE_FAILURE, "no channels field"),
            "peers": FetchError(ErrorKind.PARSE_FAILURE, "no peers field"),
        }
    )
    mixed = AggregateFetchError(
        {
            "channels": FetchError(ErrorKind.PARSE_FAILURE, "no channels field"),
            "info": FetchError(ErrorKind.COMMAND_FAILURE, "exit 1"),
        }
    )

    assert parse_only.kind is ErrorKind.COMMAND_FAILURE
    assert parse_only.retryable is False
    assert next_delay(0, parse_only, base_delay=1.0, max_retries=3) is None
    assert mixed.retryable is True
    assert next_delay(0, mixed, base_delay=1.0, max_retries=3, jitter=no_jitter) == 1.0
