"""
Connection racer

Both connection attempts start at launch, alongside the wrapped command.
When the command is done the remote attempt is polled without blocking; if
it is not ready the local attempt is awaited instead.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from .errors import SessionConnectError
from .session import Session

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Awaitable[Session]]


def poll_task(task: Optional[asyncio.Task]) -> Optional[Session]:
    """
    Return the task's session if it already finished successfully, without blocking.

    A finished-with-error task has its exception retrieved and logged so the
    event loop does not complain about it later.
    """
    if task is None or not task.done() or task.cancelled():
        return None
    error = task.exception()
    if error is not None:
        logger.debug(f"{task.get_name()} failed: {error}")
        return None
    return task.result()


class ConnectionRacer:
    """Races a remote server connection against a locally spawned one"""

    def __init__(self, remote_factory: SessionFactory, local_factory: SessionFactory):
        """
        Args:
            remote_factory: Coroutine function connecting to a running server
            local_factory: Coroutine function spawning and connecting to a local server
        """
        self._remote_factory = remote_factory
        self._local_factory = local_factory
        self._remote: Optional[asyncio.Task] = None
        self._local: Optional[asyncio.Task] = None
        self._started = False
        self._dropped: List[asyncio.Task] = []

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        """Launch both attempts on the running event loop"""
        if self.started:
            raise RuntimeError("ConnectionRacer already started")
        self._started = True
        self._remote = asyncio.create_task(self._remote_factory(), name="remote-session")
        self._local = asyncio.create_task(self._local_factory(), name="local-session")

    async def resolve(self) -> Session:
        """
        Pick a session: a finished remote one right away, else wait for the local one.

        The attempt not chosen is cancelled but not waited for; its teardown
        finishes in abandon().

        Returns:
            Connected Session

        Raises:
            SessionConnectError: If the chosen attempt failed
        """
        if not self.started:
            raise RuntimeError("ConnectionRacer.resolve() called before start()")

        remote, self._remote = self._remote, None
        local, self._local = self._local, None
        if local is None:
            raise RuntimeError("ConnectionRacer already resolved or abandoned")

        session = poll_task(remote)
        if session is not None:
            logger.info("using server")
            self._release(local)
            return session

        logger.info("starting local server")
        self._release(remote)
        try:
            return await local
        except asyncio.CancelledError:
            self._release(local)
            raise
        except SessionConnectError:
            raise
        except Exception as e:
            raise SessionConnectError(f"local server failed: {e}") from e

    async def abandon(self) -> None:
        """Drop every attempt still held and wait for all dropped attempts to wind down"""
        remote, self._remote = self._remote, None
        local, self._local = self._local, None
        self._release(remote)
        self._release(local)

        if self._dropped:
            await asyncio.wait(self._dropped)
        dropped, self._dropped = self._dropped, []
        for task in dropped:
            if not task.cancelled() and task.exception() is not None:
                logger.debug(f"{task.get_name()} failed: {task.exception()}")

    def _release(self, task: Optional[asyncio.Task]) -> None:
        if task is None:
            return
        task.cancel()
        self._dropped.append(asyncio.create_task(drop_task(task), name=f"drop-{task.get_name()}"))


async def drop_task(task: Optional[asyncio.Task]) -> None:
    """
    Cancel a pending attempt, or close the session of a finished one.

    Only a cancellation of the caller propagates; the attempt's own
    cancellation or failure is logged.
    """
    if task is None:
        return
    if not task.done():
        task.cancel()
        await asyncio.wait({task})
    session = poll_task(task)
    if session is not None:
        logger.debug(f"closing unused {session.source.value} session")
        await session.close()
