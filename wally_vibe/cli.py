"""
Command line entry points

`wally-vibe` wraps a command and forwards every argument to it untouched.
`wally-vibe-ctl` is a small click CLI for trying patterns and devices by hand.
"""

import asyncio
import functools
import sys
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

import click

from .config import LOG_FORMATS, WallyVibeConfig
from .errors import PatternParseError, SessionConnectError, WallyVibeError
from .logging_utils import get_logger, setup_logging
from .models import DEFAULT_PATTERN, UNKNOWN_EXIT_CODE
from .orchestrator import WallyVibeEngine
from .pattern import format_pattern, parse_pattern, resolve_pattern
from .playback import play
from .racer import ConnectionRacer
from .session import Session, connect_remote_session, start_local_session

logger = get_logger(__name__)

T = TypeVar("T")

# Time given to the remote attempt before ctl commands resolve the race
CONNECT_GRACE_S = 0.5


def run(cfg: WallyVibeConfig, args: Sequence[str]) -> int:
    """
    Run a wrapped command to completion.

    Returns:
        Exit code to report; UNKNOWN_EXIT_CODE when the command could not run
    """
    try:
        return asyncio.run(WallyVibeEngine(cfg).run(args))
    except WallyVibeError as e:
        logger.error(f"Error: {e}")
        return UNKNOWN_EXIT_CODE
    except KeyboardInterrupt:
        logger.info("interrupted")
        return UNKNOWN_EXIT_CODE


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for `wally-vibe <args...>`"""
    args = sys.argv[1:] if argv is None else list(argv)
    # Defaults first so warnings about bad settings get the usual format
    setup_logging()
    cfg = WallyVibeConfig.from_env()
    setup_logging(log_level=cfg.log_level, log_format=cfg.log_format)
    sys.exit(run(cfg, args))


async def _with_session(cfg: WallyVibeConfig, scan_time: float,
                        action: Callable[[Session], Awaitable[T]]) -> T:
    racer = ConnectionRacer(
        functools.partial(connect_remote_session, cfg),
        functools.partial(start_local_session, cfg),
    )
    racer.start()
    try:
        await asyncio.sleep(CONNECT_GRACE_S)
        session = await racer.resolve()
        try:
            await asyncio.sleep(scan_time)
            return await action(session)
        finally:
            await session.close()
    finally:
        await racer.abandon()


@click.group()
@click.option('--log-level', default=None, help='Log level (default: WALLY_VIBE_LOG_LEVEL or INFO)')
@click.option('--log-format', default=None, type=click.Choice(LOG_FORMATS), help='Log format')
@click.pass_context
def ctl(ctx, log_level, log_format):
    """wally-vibe control CLI - try patterns and devices without wrapping a command"""
    setup_logging()
    cfg = WallyVibeConfig.from_env()
    setup_logging(log_level=log_level or cfg.log_level, log_format=log_format or cfg.log_format)
    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg


@ctl.command()
@click.argument('text', required=False)
@click.pass_context
def pattern(ctx, text):
    """Parse a pattern (default: WALLY_VIBE_PATTERN) and show its steps"""
    cfg = ctx.obj['config']
    if text is None:
        text = cfg.pattern_text
    if text is None:
        click.echo(f"No pattern set, default is {format_pattern(DEFAULT_PATTERN)!r}")
        steps = DEFAULT_PATTERN
    else:
        try:
            steps = parse_pattern(text)
        except PatternParseError as e:
            click.echo(f"Invalid pattern: {e}")
            sys.exit(1)

    total_s = sum(step.duration_s for step in steps)
    click.echo(f"{len(steps)} step(s), {total_s:g}s total:")
    for index, step in enumerate(steps, start=1):
        click.echo(f"  {index}. intensity {step.intensity:g} for {step.duration_s:g}s")


@ctl.command()
@click.option('--scan-time', '-t', default=3.0, show_default=True, help='Seconds to scan before listing')
@click.pass_context
def devices(ctx, scan_time):
    """Connect (server or local engine) and list devices"""
    cfg = ctx.obj['config']

    async def _list(session: Session):
        return session.source, session.devices

    try:
        source, found = asyncio.run(_with_session(cfg, scan_time, _list))
    except SessionConnectError as e:
        click.echo(f"Could not connect: {e}")
        sys.exit(1)

    click.echo(f"Connected via {source.value} session")
    if not found:
        click.echo("No devices found")
        return
    click.echo(f"Found {len(found)} device(s):")
    for device in found:
        click.echo(f"  - {device.name}")


@ctl.command()
@click.option('--pattern', '-p', 'text', default=None, help='Pattern to play (default: WALLY_VIBE_PATTERN)')
@click.option('--scan-time', '-t', default=3.0, show_default=True, help='Seconds to scan before playing')
@click.pass_context
def vibe(ctx, text, scan_time):
    """Play a pattern on every device without running a command"""
    cfg = ctx.obj['config']
    steps = resolve_pattern(text if text is not None else cfg.pattern_text)

    try:
        result = asyncio.run(_with_session(cfg, scan_time, lambda session: play(session, steps)))
    except WallyVibeError as e:
        click.echo(f"Vibe failed: {e}")
        sys.exit(1)

    click.echo(f"Played {result.steps_played} step(s) on {result.device_count} device(s)")


@ctl.command()
@click.pass_context
def status(ctx):
    """Show the effective configuration"""
    cfg = ctx.obj['config']

    click.echo("wally-vibe configuration:")
    click.echo(f"  Wrapped command: {cfg.program}")
    click.echo(f"  Pattern: {format_pattern(resolve_pattern(cfg.pattern_text))}")
    click.echo(f"  Server: {cfg.server_address}")
    click.echo(f"  Local engine: {' '.join(cfg.engine.command())}")
    click.echo(f"  Log level: {cfg.log_level}")
    click.echo(f"  Log format: {cfg.log_format}")


if __name__ == '__main__':
    main()
