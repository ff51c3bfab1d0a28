from __future__ import annotations
import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import ScholrError, TransientRateLimit

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_STATUSES = (429, 503)
_TRANSIENT_MARKERS = ("429", "RESOURCE_EXHAUSTED", "quota")


def _status_of(error: BaseException) -> Optional[int]:
	for attr in ("status", "status_code"):
		value = getattr(error, attr, None)
		if isinstance(value, int):
			return value
	return None


def is_transient(error: BaseException) -> bool:
	"""True when the failure looks like a rate limit or temporary overload."""
	if isinstance(error, ScholrError):
		return isinstance(error, TransientRateLimit)
	if _status_of(error) in _TRANSIENT_STATUSES:
		return True
	message = str(error)
	return any(marker in message for marker in _TRANSIENT_MARKERS)


def is_rate_limited(error: BaseException) -> bool:
	return _status_of(error) == 429 or "429" in str(error)


async def retry_api(
	operation: Callable[[], Awaitable[T]],
	retries: int = 3,
	delay: float = 2.0,
	*,
	max_delay: Optional[float] = None,
	sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
	"""Run ``operation``, retrying transient failures with doubling backoff.

	The k-th retry waits ``delay * 2**(k-1)`` seconds, clamped to
	``max_delay`` when one is given. Non-transient failures, and transient
	ones once ``retries`` is exhausted, propagate unchanged.
	"""
	try:
		return await operation()
	except Exception as err:
		if retries > 0 and is_transient(err):
			wait = delay if max_delay is None else min(delay, max_delay)
			logger.warning("API rate limit hit. Retrying in %.1fs... (%d retries left)", wait, retries)
			await sleep(wait)
			return await retry_api(operation, retries - 1, delay * 2, max_delay=max_delay, sleep=sleep)
		raise
