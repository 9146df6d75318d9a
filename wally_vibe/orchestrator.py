"""
Orchestrator for a wrapped run: command first, vibes after
"""

import asyncio
import functools
import time
from typing import Optional, Sequence

from .config import WallyVibeConfig
from .errors import ChildSpawnError, PlaybackError, SessionConnectError
from .logging_utils import get_logger, log_error, log_metrics, log_phase_end, log_phase_start
from .models import Pattern, RunMetrics
from .pattern import format_pattern, resolve_pattern
from .playback import Sleep, play
from .racer import ConnectionRacer, SessionFactory
from .session import Session, connect_remote_session, start_local_session
from .supervisor import run_command

logger = get_logger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class WallyVibeEngine:
    """Runs the wrapped command and celebrates a success on every reachable device"""

    def __init__(self, cfg: WallyVibeConfig,
                 remote_factory: Optional[SessionFactory] = None,
                 local_factory: Optional[SessionFactory] = None,
                 sleep: Sleep = asyncio.sleep):
        """
        Initialize the engine.

        Args:
            cfg: Configuration resolved at startup
            remote_factory: Override for connecting to a running server
            local_factory: Override for spawning a local server
            sleep: Coroutine used between pattern steps
        """
        self.cfg = cfg
        self.remote_factory = remote_factory or functools.partial(connect_remote_session, cfg)
        self.local_factory = local_factory or functools.partial(start_local_session, cfg)
        self.sleep = sleep

    def new_racer(self) -> ConnectionRacer:
        return ConnectionRacer(self.remote_factory, self.local_factory)

    async def run(self, args: Sequence[str]) -> int:
        """
        Run the wrapped command and, if it succeeds, play the pattern.

        Haptic-side problems are logged and never change the result.

        Args:
            args: Arguments forwarded to the wrapped command

        Returns:
            Exit code of the wrapped command (-1 when unavailable)

        Raises:
            ChildSpawnError: If the wrapped command cannot be started
        """
        metrics = RunMetrics()
        total_start = time.monotonic()
        racer = self.new_racer()
        racer.start()

        try:
            log_phase_start(logger, "command", program=self.cfg.program)
            try:
                child = await run_command(self.cfg.program, args)
            except ChildSpawnError as e:
                metrics.branch = "failed:spawn"
                metrics.add_error(str(e), "command")
                raise
            metrics.command_ms = child.duration_ms
            log_phase_end(logger, "command", child.duration_ms, child.success,
                          returncode=child.returncode)

            if child.success:
                logger.info("success!")
                await self._celebrate(racer, metrics)
            else:
                logger.info("failed")
                metrics.branch = "skipped:command_failed"

            return child.exit_code
        finally:
            await racer.abandon()
            metrics.total_duration_ms = _elapsed_ms(total_start)
            log_metrics(logger, metrics.to_dict())

    async def _celebrate(self, racer: ConnectionRacer, metrics: RunMetrics) -> None:
        log_phase_start(logger, "connect")
        connect_start = time.monotonic()
        try:
            session = await racer.resolve()
        except SessionConnectError as e:
            metrics.branch = "failed:no_session"
            metrics.add_error(str(e), "connect")
            logger.error("sorry, couldn't create a client")
            logger.debug(f"connection error: {e}")
            return
        metrics.connect_ms = _elapsed_ms(connect_start)
        metrics.branch = session.source.value
        log_phase_end(logger, "connect", metrics.connect_ms, True, source=session.source.value)

        try:
            await self._play(session, metrics)
        finally:
            await session.close()

    def load_pattern(self) -> Pattern:
        """Resolve the configured pattern, reporting a bad one and using the default instead"""
        pattern = resolve_pattern(self.cfg.pattern_text)
        logger.info(f"pattern: {format_pattern(pattern)}")
        return pattern

    async def _play(self, session: Session, metrics: RunMetrics) -> None:
        pattern = self.load_pattern()
        log_phase_start(logger, "playback", steps=len(pattern))
        playback_start = time.monotonic()
        try:
            result = await play(session, pattern, sleep=self.sleep)
        except PlaybackError as e:
            metrics.add_error(str(e), "playback")
            log_error(logger, "error trying to vibe", e)
            return
        finally:
            metrics.playback_ms = _elapsed_ms(playback_start)
        metrics.steps_played = result.steps_played
        metrics.device_count = result.device_count
        log_phase_end(logger, "playback", metrics.playback_ms, True,
                      steps_played=result.steps_played, device_count=result.device_count)


__all__ = ("WallyVibeEngine",)
