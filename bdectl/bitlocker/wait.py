"""Bounded wait for a volume to finish decrypting."""

import threading
from typing import Callable

from bdectl.bitlocker.errors import CancelledError, DecryptionTimeoutError
from bdectl.bitlocker.models import VolumeState
from bdectl.bitlocker.query import get_volume_state
from bdectl.core.config import Settings
from bdectl.core.context import Context


def backoff_delays(initial: float, maximum: float, factor: float = 2.0):
    """Yield poll delays doubling from initial up to maximum."""
    delay = max(initial, 0.0)
    while True:
        yield delay
        delay = min(delay * factor, maximum) if delay else maximum


def wait_for_decryption(
    mount_point: str,
    context: Context,
    settings: Settings,
    cancel: threading.Event | None = None,
    on_poll: Callable[[VolumeState], None] | None = None,
) -> VolumeState:
    """
    Poll the volume until it reports FullyDecrypted.

    Args:
        mount_point: Volume being decrypted
        context: Execution context
        settings: Supplies decrypt_timeout, poll_interval, poll_max_interval
        cancel: Set from another thread to abandon the wait
        on_poll: Called with every state observed, for progress logging

    Returns:
        The first FullyDecrypted state observed

    Raises:
        DecryptionTimeoutError: Deadline passed before decryption finished
        CancelledError: cancel was set
    """
    deadline = context.monotonic() + settings.decrypt_timeout
    delays = backoff_delays(settings.poll_interval, settings.poll_max_interval)

    while True:
        if cancel is not None and cancel.is_set():
            raise CancelledError(f"Wait for {mount_point} decryption cancelled")

        state = get_volume_state(mount_point, context, timeout=settings.command_timeout)
        if on_poll is not None:
            on_poll(state)
        if state.fully_decrypted:
            return state

        remaining = deadline - context.monotonic()
        if remaining <= 0:
            raise DecryptionTimeoutError(
                f"{mount_point} still {state.volume_status.value} "
                f"({state.encryption_percentage:.1f}% encrypted) after "
                f"{settings.decrypt_timeout:.0f}s"
            )

        delay = min(next(delays), remaining)
        if cancel is not None:
            if cancel.wait(delay):
                raise CancelledError(f"Wait for {mount_point} decryption cancelled")
        else:
            context.sleep(delay)
