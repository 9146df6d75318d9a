"""
Runs the wrapped command
"""

import asyncio
import logging
import time
from typing import Sequence

from .errors import ChildSpawnError
from .models import ChildResult

logger = logging.getLogger(__name__)


async def run_command(program: str, args: Sequence[str]) -> ChildResult:
    """
    Run program with args, inheriting stdio, and wait for it to exit.

    Args:
        program: Executable name (looked up on PATH) or path
        args: Arguments forwarded unchanged

    Returns:
        ChildResult with the return code and elapsed time

    Raises:
        ChildSpawnError: If the program cannot be started
    """
    logger.debug(f"Running {program} {' '.join(args)}".rstrip())
    start = time.monotonic()
    try:
        process = await asyncio.create_subprocess_exec(program, *args)
    except (OSError, ValueError) as e:
        raise ChildSpawnError(f"couldn't run {program!r}: {e}") from e

    returncode = await process.wait()
    result = ChildResult(
        returncode=returncode,
        duration_ms=int((time.monotonic() - start) * 1000),
    )
    if returncode < 0:
        logger.debug(f"{program} terminated by signal {-returncode}")
    return result
