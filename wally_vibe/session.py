"""
Buttplug control sessions

Wraps the buttplug client library behind a small Session/Device surface and
provides the two ways of getting one: connecting to an already running
server, or spawning a local intiface-engine and connecting to that.
"""

import asyncio
import logging
from asyncio.subprocess import DEVNULL, Process
from typing import List, Optional, Protocol

from buttplug import Client, ProtocolSpec, WebsocketConnector
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import WallyVibeConfig
from .errors import SessionConnectError
from .models import SessionSource

logger = logging.getLogger(__name__)

VIBRATE_ACTUATOR = "Vibrate"
ENGINE_STOP_TIMEOUT_S = 3.0


class Device(Protocol):
    """Anything playback can drive"""
    name: str

    async def vibrate(self, intensity: float) -> None: ...


class Session(Protocol):
    """A connected control endpoint"""
    source: SessionSource

    @property
    def devices(self) -> List[Device]: ...

    async def stop_all(self) -> None: ...

    async def close(self) -> None: ...


class ButtplugDevice:
    """Device handle backed by a buttplug client device"""

    def __init__(self, device):
        self._device = device

    @property
    def name(self) -> str:
        return self._device.name

    @property
    def index(self) -> int:
        return self._device.index

    async def vibrate(self, intensity: float) -> None:
        """Set every vibration actuator of the device to intensity"""
        vibrators = [a for a in self._device.actuators if a.type == VIBRATE_ACTUATOR]
        if not vibrators:
            logger.debug(f"{self.name} has no vibrators, skipping")
            return
        for actuator in vibrators:
            await actuator.command(intensity)

    def __repr__(self) -> str:
        return f"ButtplugDevice({self.index}, {self.name!r})"


class ButtplugSession:
    """Session backed by a connected buttplug Client"""

    def __init__(self, client: Client, source: SessionSource,
                 engine_process: Optional[Process] = None):
        """
        Args:
            client: Connected client that is already scanning
            source: Which connection attempt produced the client
            engine_process: Spawned engine to terminate on close (local sessions only)
        """
        self._client = client
        self.source = source
        self._engine_process = engine_process

    @property
    def devices(self) -> List[ButtplugDevice]:
        """Snapshot of the devices known right now, ordered by device index"""
        return [ButtplugDevice(device) for _, device in sorted(self._client.devices.items())]

    async def stop_all(self) -> None:
        await self._client.stop_all()

    async def close(self) -> None:
        """Disconnect the client and stop the spawned engine, if any"""
        await _disconnect_quietly(self._client)
        if self._engine_process is not None:
            await terminate_engine(self._engine_process)


class _EngineNotReady(SessionConnectError):
    """The spawned engine is not accepting connections yet"""


async def _disconnect_quietly(client: Client) -> None:
    try:
        await client.disconnect()
    except Exception as e:
        logger.debug(f"Disconnect failed (non-fatal): {e}")


async def _open_client(name: str, address: str, connect_error=SessionConnectError) -> Client:
    """
    Connect a client to address and start scanning for devices.

    Args:
        name: Client name announced to the server
        address: Websocket address, e.g. ws://127.0.0.1:12345
        connect_error: Exception class raised when the connection itself fails

    Returns:
        Connected, scanning Client

    Raises:
        SessionConnectError: If connecting or starting the scan fails
    """
    client = Client(name, ProtocolSpec.v3)
    connector = WebsocketConnector(address, logger=client.logger)
    try:
        await client.connect(connector)
    except Exception as e:
        raise connect_error(f"couldn't connect to {address}: {e}") from e

    try:
        await client.start_scanning()
    except asyncio.CancelledError:
        await _disconnect_quietly(client)
        raise
    except Exception as e:
        await _disconnect_quietly(client)
        raise SessionConnectError(f"couldn't start scanning on {address}: {e}") from e

    logger.debug(f"Connected to {address} and scanning")
    return client


async def connect_remote_session(config: WallyVibeConfig) -> ButtplugSession:
    """Connect to an already running Buttplug server"""
    client = await _open_client(config.client_name, config.server_address)
    return ButtplugSession(client, SessionSource.REMOTE)


async def terminate_engine(process: Process) -> None:
    """Terminate a spawned engine, killing it if it does not exit in time"""
    if process.returncode is not None:
        return
    try:
        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=ENGINE_STOP_TIMEOUT_S)
        except asyncio.TimeoutError:
            logger.debug(f"Engine {process.pid} ignored terminate, killing")
            process.kill()
            await process.wait()
    except ProcessLookupError:
        pass


async def _connect_to_engine(config: WallyVibeConfig, process: Process) -> Client:
    settings = config.engine
    retrying = AsyncRetrying(
        stop=stop_after_attempt(settings.connect_attempts),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
        retry=retry_if_exception_type(_EngineNotReady),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            if process.returncode is not None:
                raise SessionConnectError(f"{settings.path} exited with code {process.returncode}")
            client = await _open_client(config.client_name, settings.address, connect_error=_EngineNotReady)
    return client


async def start_local_session(config: WallyVibeConfig) -> ButtplugSession:
    """
    Spawn a local intiface-engine and connect to it.

    The engine is terminated again if connecting fails or the attempt is
    cancelled before a session exists.

    Raises:
        SessionConnectError: If the engine cannot be started or reached
    """
    command = config.engine.command()
    logger.debug(f"Spawning local engine: {' '.join(command)}")
    try:
        process = await asyncio.create_subprocess_exec(
            *command, stdin=DEVNULL, stdout=DEVNULL, stderr=DEVNULL
        )
    except OSError as e:
        raise SessionConnectError(f"couldn't start {config.engine.path}: {e}") from e

    try:
        client = await _connect_to_engine(config, process)
    except BaseException:
        await terminate_engine(process)
        raise
    return ButtplugSession(client, SessionSource.LOCAL, engine_process=process)
