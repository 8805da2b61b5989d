# waits

import asyncio
import threading
import time


from   enum     import Enum
from   typing   import Any, Awaitable, Callable


from   .schema  import DEFAULT_POLL_INTERVAL_MS


class WaitOutcome(str, Enum):
	"""How a suspension ended"""
	SATISFIED = "satisfied"
	TIMED_OUT = "timed_out"
	CANCELLED = "cancelled"


async def run_blocking(fn: Callable[..., Any], *args, **kwargs) -> Any:
	"""Run a blocking collaborator call off the event loop"""
	return await asyncio.to_thread(fn, *args, **kwargs)


async def cooperative_sleep(duration_ms: float, stop_flag: threading.Event, slice_ms: int = DEFAULT_POLL_INTERVAL_MS) -> bool:
	"""
	Sleep for duration_ms in slices of at most slice_ms, checking the stop
	flag between slices. Returns False when stopped before the time elapsed.
	"""
	slice_s  = max(1, slice_ms) / 1000.0
	deadline = time.monotonic() + max(0.0, duration_ms) / 1000.0
	while True:
		if stop_flag.is_set():
			return False
		remaining = deadline - time.monotonic()
		if remaining <= 0:
			return True
		await asyncio.sleep(min(remaining, slice_s))


async def poll_until(
	check            : Callable[[], Awaitable[bool]],
	interval_ms      : int,
	timeout_ms       : int,
	stop_flag        : threading.Event,
	slice_ms         : int = DEFAULT_POLL_INTERVAL_MS,
) -> WaitOutcome:
	"""
	Await check() every interval_ms until it returns True.

	A timeout_ms of 0 or less never times out. The stop flag is checked before
	every poll and during the sleeps in between.
	"""
	interval_ms = max(1, interval_ms)
	start       = time.monotonic()
	while True:
		if stop_flag.is_set():
			return WaitOutcome.CANCELLED
		if await check():
			return WaitOutcome.SATISFIED

		wait_ms = interval_ms
		if timeout_ms > 0:
			elapsed_ms = (time.monotonic() - start) * 1000.0
			if elapsed_ms >= timeout_ms:
				return WaitOutcome.TIMED_OUT
			wait_ms = min(wait_ms, timeout_ms - elapsed_ms)

		if not await cooperative_sleep(wait_ms, stop_flag, slice_ms):
			return WaitOutcome.CANCELLED


async def wait_for_signal(signal: asyncio.Event, stop_flag: threading.Event, slice_ms: int = DEFAULT_POLL_INTERVAL_MS) -> bool:
	"""Wait until signal is set, then consume it. Returns False when stopped first."""
	slice_s = max(1, slice_ms) / 1000.0
	while not stop_flag.is_set():
		try:
			await asyncio.wait_for(signal.wait(), timeout=slice_s)
		except asyncio.TimeoutError:
			continue
		signal.clear()
		return True
	return False
