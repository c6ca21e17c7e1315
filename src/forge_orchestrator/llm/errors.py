"""Failure kinds surfaced by completion providers."""

from __future__ import annotations


class CompletionError(Exception):
    """Base class for completion failures.

    ``retryable`` tells callers whether backing off and trying again can help.
    """

    kind: str = "serviceError"
    retryable: bool = False


class RateLimitedError(CompletionError):
    kind = "rateLimited"
    retryable = True


class QuotaExhaustedError(CompletionError):
    """Credits or quota are gone; needs operator or billing action."""

    kind = "quotaExhausted"
    retryable = False


class TransportError(CompletionError):
    kind = "transportError"
    retryable = True


class ServiceError(CompletionError):
    kind = "serviceError"
    retryable = False


def error_for_status(status_code: int, message: str) -> CompletionError:
    """Map an HTTP status from the completion service to a failure kind."""

    if status_code == 429:
        return RateLimitedError(message)
    if status_code == 402:
        return QuotaExhaustedError(message)
    if status_code in (408, 504):
        return TransportError(message)
    return ServiceError(message)
