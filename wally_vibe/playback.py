"""
Pattern playback against every device of a session
"""

import asyncio
import logging
from typing import Awaitable, Callable

from .errors import PlaybackError
from .logging_utils import log_device_command
from .models import Pattern, PlaybackResult
from .session import Session

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


async def play(session: Session, pattern: Pattern, sleep: Sleep = asyncio.sleep) -> PlaybackResult:
    """
    Drive all devices of a session through a pattern.

    The device list is read once. For each step every device gets the step's
    intensity, one after the other, then the step's duration elapses before
    the next step. A single stop-all ends the run. Nothing is sent when the
    session has no devices.

    Args:
        session: Connected session
        pattern: Steps to play, in order
        sleep: Coroutine used to wait out each step

    Returns:
        PlaybackResult with the number of steps played and devices driven

    Raises:
        PlaybackError: If a device command or the final stop fails; remaining steps are skipped
    """
    devices = list(session.devices)
    result = PlaybackResult(device_count=len(devices))
    if not devices:
        logger.info("no devices found")
        return result

    logger.info(f"vibing {len(devices)} device(s): {', '.join(d.name for d in devices)}")
    for index, step in enumerate(pattern):
        for device in devices:
            log_device_command(logger, device.name, index, step.intensity)
            try:
                await device.vibrate(step.intensity)
            except Exception as e:
                raise PlaybackError(
                    f"{device.name} rejected intensity {step.intensity:g} at step {index}: {e}"
                ) from e
        await sleep(step.duration_s)
        result.steps_played += 1

    try:
        await session.stop_all()
    except Exception as e:
        raise PlaybackError(f"stop all devices failed: {e}") from e
    result.stopped = True
    return result
