"""
Configuration models for wally-vibe

Everything comes from environment variables; there is no config file.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Mapping
import os
import shlex
import logging

logger = logging.getLogger(__name__)

CLIENT_NAME = "wally-vibe"
DEFAULT_PROGRAM = "wally"
DEFAULT_SERVER_ADDRESS = "ws://127.0.0.1:12345"
DEFAULT_ENGINE_PATH = "intiface-engine"
DEFAULT_ENGINE_PORT = 12346
DEFAULT_ENGINE_ARGS = ["--use-bluetooth-le", "--use-serial", "--use-hid", "--use-lovense-dongle-hid"]

PROGRAM_ENV = "WALLY"
PATTERN_ENV = "WALLY_VIBE_PATTERN"
SERVER_ENV = "WALLY_VIBE_SERVER"
ENGINE_ENV = "WALLY_VIBE_ENGINE"
ENGINE_PORT_ENV = "WALLY_VIBE_ENGINE_PORT"
ENGINE_ARGS_ENV = "WALLY_VIBE_ENGINE_ARGS"
LOG_LEVEL_ENV = "WALLY_VIBE_LOG_LEVEL"
LOG_FORMAT_ENV = "WALLY_VIBE_LOG_FORMAT"

LOG_FORMATS = ("text", "verbose", "json")


class EngineSettings(BaseModel):
    """Settings for the locally spawned Buttplug engine"""
    model_config = {"frozen": True}

    path: str = Field(default=DEFAULT_ENGINE_PATH, description="Engine executable, looked up on PATH")
    port: int = Field(default=DEFAULT_ENGINE_PORT, ge=1, le=65535, description="Loopback websocket port for the engine")
    args: List[str] = Field(default_factory=lambda: list(DEFAULT_ENGINE_ARGS), description="Extra engine arguments (device managers)")
    connect_attempts: int = Field(default=10, ge=1, le=100, description="Connection attempts while the engine boots")

    @property
    def address(self) -> str:
        """Websocket address the spawned engine listens on"""
        return f"ws://127.0.0.1:{self.port}"

    def command(self) -> List[str]:
        """Full command line used to spawn the engine"""
        return [self.path, "--websocket-port", str(self.port), "--server-name", CLIENT_NAME, *self.args]


class WallyVibeConfig(BaseModel):
    """Main configuration, resolved once at startup"""
    model_config = {"frozen": True}

    program: str = Field(default=DEFAULT_PROGRAM, description="Wrapped command")
    pattern_text: Optional[str] = Field(default=None, description="Raw vibration pattern text")
    client_name: str = Field(default=CLIENT_NAME, description="Name announced to the Buttplug server")
    server_address: str = Field(default=DEFAULT_SERVER_ADDRESS, description="Remote Buttplug server address")
    engine: EngineSettings = Field(default_factory=EngineSettings, description="Local engine settings")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format (text|verbose|json)")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "WallyVibeConfig":
        """
        Create configuration from environment variables.

        Invalid values are logged and replaced by defaults so that a bad
        haptics setting never stops the wrapped command from running.

        Args:
            environ: Mapping to read instead of os.environ

        Returns:
            WallyVibeConfig instance
        """
        env = os.environ if environ is None else environ

        engine_args = list(DEFAULT_ENGINE_ARGS)
        if env.get(ENGINE_ARGS_ENV) is not None:
            try:
                engine_args = shlex.split(env[ENGINE_ARGS_ENV])
            except ValueError as e:
                logger.warning(f"Ignoring {ENGINE_ARGS_ENV}: {e}")

        log_level = env.get(LOG_LEVEL_ENV, "INFO").upper()
        if not isinstance(logging.getLevelName(log_level), int):
            logger.warning(f"Ignoring unknown {LOG_LEVEL_ENV} {log_level!r}")
            log_level = "INFO"

        log_format = env.get(LOG_FORMAT_ENV, "text").lower()
        if log_format not in LOG_FORMATS:
            logger.warning(f"Ignoring unknown {LOG_FORMAT_ENV} {log_format!r}")
            log_format = "text"

        return cls(
            program=env.get(PROGRAM_ENV) or DEFAULT_PROGRAM,
            pattern_text=env.get(PATTERN_ENV),
            server_address=env.get(SERVER_ENV) or DEFAULT_SERVER_ADDRESS,
            engine=EngineSettings(
                path=env.get(ENGINE_ENV) or DEFAULT_ENGINE_PATH,
                port=_port_from_env(env),
                args=engine_args,
            ),
            log_level=log_level,
            log_format=log_format,
        )


def _port_from_env(env: Mapping[str, str]) -> int:
    raw = env.get(ENGINE_PORT_ENV)
    if raw is None:
        return DEFAULT_ENGINE_PORT
    try:
        port = int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {ENGINE_PORT_ENV} {raw!r}")
        return DEFAULT_ENGINE_PORT
    if not 1 <= port <= 65535:
        logger.warning(f"Ignoring out-of-range {ENGINE_PORT_ENV} {port}")
        return DEFAULT_ENGINE_PORT
    return port
