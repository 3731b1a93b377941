"""Bounded retry of remote operations.

Every remote call made during a provisioning run goes through ``RetryExecutor``. The
executor only knows whether a call raised; deciding which failures deserve special
handling is left to the caller.
"""

from __future__ import annotations

import functools
import random
from dataclasses import dataclass
from typing import Callable, Generator, Optional, TypeVar

import backoff

from pdum.provision.log import ConsoleLogger
from pdum.provision.types.exceptions import OperatorAbort

T = TypeVar("T")

BackoffFn = Callable[[int], float]


def linear_backoff(step: float = 5.0, max_jitter: float = 2.0) -> BackoffFn:
    """Return ``attempt -> attempt * step + U(0, max_jitter)``."""

    def delay(attempt: int) -> float:
        jitter = random.uniform(0, max_jitter) if max_jitter > 0 else 0.0
        return attempt * step + jitter

    return delay


def _wait_gen(backoff_fn: BackoffFn) -> Generator[Optional[float], None, None]:
    # backoff primes the generator with send(None) before the first wait.
    yield None
    attempt = 1
    while True:
        yield max(0.0, backoff_fn(attempt))
        attempt += 1


def _is_operator_abort(exc: Exception) -> bool:
    return isinstance(exc, (OperatorAbort, BrokenPipeError))


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    step_seconds: float = 5.0
    jitter_seconds: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def backoff_fn(self) -> BackoffFn:
        return linear_backoff(self.step_seconds, self.jitter_seconds)


class RetryExecutor:
    """Call an operation up to ``max_attempts`` times, sleeping between failures.

    After the final attempt the last exception is re-raised unchanged. An operator
    interrupt (``KeyboardInterrupt``, ``BrokenPipeError`` or ``OperatorAbort``) is never
    retried and surfaces as ``OperatorAbort``. The executor holds no state between
    calls and can be shared by every component of a run.
    """

    def __init__(self, policy: Optional[RetryPolicy] = None, *, logger: Optional[ConsoleLogger] = None):
        self.policy = policy or RetryPolicy()
        self.logger = logger or ConsoleLogger()

    def execute(
        self,
        operation: Callable[[], T],
        max_attempts: Optional[int] = None,
        backoff_fn: Optional[BackoffFn] = None,
        *,
        description: str = "",
    ) -> T:
        attempts = self.policy.max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        label = description or getattr(operation, "__name__", "operation")

        def on_backoff(details):
            self.logger.warning(
                f"Retry {details['tries']}/{attempts} for {label} "
                f"(waiting {details['wait']:.1f}s): {details['exception']}"
            )

        def on_giveup(details):
            if _is_operator_abort(details["exception"]):
                return
            if attempts > 1:
                self.logger.error(f"{label} failed after {details['tries']} attempts")

        retrying = backoff.on_exception(
            functools.partial(_wait_gen, backoff_fn or self.policy.backoff_fn()),
            Exception,
            max_tries=attempts,
            jitter=None,
            giveup=_is_operator_abort,
            on_backoff=on_backoff,
            on_giveup=on_giveup,
            logger=None,
        )(operation)

        try:
            return retrying()
        except KeyboardInterrupt as e:
            raise OperatorAbort("interrupted") from e
        except BrokenPipeError as e:
            raise OperatorAbort("broken pipe") from e


__all__ = ["BackoffFn", "RetryExecutor", "RetryPolicy", "linear_backoff"]
