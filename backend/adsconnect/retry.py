"""
Result type and retry combinator for Graph API calls.

Each attempt returns a CallResult instead of raising. The combinator
classifies the failure first: credential failures stop immediately,
everything else is retried with exponential backoff until the attempts
run out, and the last failure is handed back to the caller.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt, wait_exponential

from adsconnect.errors import ExpiredCredential, GraphError, RemoteApiError, TransportError

logger = logging.getLogger(__name__)


class FailureKind(str, enum.Enum):
    EXPIRED_CREDENTIAL = "expired_credential"
    REMOTE_API = "remote_api"
    TRANSPORT = "transport"


def classify(error: GraphError) -> FailureKind:
    if isinstance(error, ExpiredCredential):
        return FailureKind.EXPIRED_CREDENTIAL
    if isinstance(error, RemoteApiError):
        return FailureKind.REMOTE_API
    if isinstance(error, TransportError):
        return FailureKind.TRANSPORT
    raise TypeError(f"Unclassified Graph error: {type(error).__name__}")


def is_retryable(kind: FailureKind) -> bool:
    return kind is not FailureKind.EXPIRED_CREDENTIAL


@dataclass(frozen=True)
class CallResult:
    """Outcome of one attempt: either a parsed response or a classified error."""
    value: Any = None
    error: Optional[GraphError] = None

    @classmethod
    def success(cls, value: Any) -> "CallResult":
        return cls(value=value)

    @classmethod
    def failure(cls, error: GraphError) -> "CallResult":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[FailureKind]:
        return None if self.error is None else classify(self.error)

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value


def _still_failing(result: CallResult) -> bool:
    return not result.ok and is_retryable(result.kind)


async def retry_call(
    attempt_fn: Callable[[], Awaitable[CallResult]],
    max_attempts: int = 3,
    backoff_base_seconds: float = 1.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    description: str = "call",
) -> CallResult:
    """Run ``attempt_fn`` until it succeeds, fails with a non-retryable kind, or attempts run out."""
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def _log_retry(retry_state: RetryCallState) -> None:
        result = retry_state.outcome.result()
        logger.warning(
            f"{description}: attempt {retry_state.attempt_number}/{max_attempts} failed "
            f"({result.kind.value}: {result.error}); retrying in {retry_state.next_action.sleep:.1f}s"
        )

    def _give_up(retry_state: RetryCallState) -> CallResult:
        result = retry_state.outcome.result()
        logger.error(f"{description}: giving up after {max_attempts} attempts: {result.error}")
        return result

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=backoff_base_seconds),
        retry=retry_if_result(_still_failing),
        before_sleep=_log_retry,
        retry_error_callback=_give_up,
        sleep=sleep,
    )
    result = await retrying(attempt_fn)
    if not result.ok and not is_retryable(result.kind):
        logger.warning(f"{description}: {result.kind.value}, not retrying")
    return result
