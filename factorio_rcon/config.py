"""Settings for the RCON client and the server process.

Values come from the ``FACTORIO_*`` environment variables set by the
container start script, validated with pydantic. Timeouts in the
environment are milliseconds; the models store seconds.
"""

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError


class RconSettings(BaseModel):
    """Where and how to reach the RCON port."""

    model_config = ConfigDict(frozen=True)

    host: str = "localhost"
    port: int = Field(27015, ge=1, le=65535)
    password: str = Field(min_length=1)
    connect_timeout: float = Field(10.0, gt=0)
    response_timeout: float = Field(5.0, gt=0)
    max_retries: int = Field(3, ge=0)
    retry_delay: float = Field(1.0, ge=0)


class ServerSettings(BaseModel):
    """How to launch, stop and wait for the Factorio server process."""

    model_config = ConfigDict(frozen=True)

    save_name: str = "default"
    saves_dir: str = "/factorio/saves"
    executable: str | None = None
    game_port: int = Field(34197, ge=1, le=65535)
    settings_path: str = "/factorio/config/server-settings.json"
    mods_path: str = "/factorio/mods"
    server_id_path: str | None = None
    lock_path: str | None = "/factorio/.lock"
    pid_file: str | None = None
    settle_interval: float = Field(5.0, ge=0)
    ready_interval: float = Field(2.0, ge=0)
    ready_attempts: int = Field(30, ge=1)
    stop_timeout: float = Field(30.0, ge=0)


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    rcon: RconSettings
    server: ServerSettings = Field(default_factory=ServerSettings)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        host: str | None = None,
        port: int | None = None,
        password: str | None = None,
    ) -> "Settings":
        """Load settings from the environment.

        Args:
            environ: Mapping to read instead of ``os.environ``.
            host, port, password: Explicit overrides (e.g. CLI flags);
                ``None`` means "use the environment".

        Raises:
            ConfigError: If a value is missing or fails validation.
        """
        env = os.environ if environ is None else environ

        rcon: dict = {
            "host": env.get("FACTORIO_RCON_HOST"),
            "port": env.get("FACTORIO_RCON_PORT"),
            "password": env.get("FACTORIO_RCON_PASSWORD", ""),
            "max_retries": env.get("FACTORIO_RCON_MAX_RETRIES"),
        }
        server: dict = {
            "save_name": env.get("FACTORIO_SAVE_NAME"),
            "saves_dir": env.get("FACTORIO_SAVES_DIR"),
            "executable": env.get("FACTORIO_BIN"),
            "game_port": env.get("FACTORIO_PORT"),
            "settings_path": env.get("FACTORIO_SERVER_SETTINGS_PATH"),
            "mods_path": env.get("FACTORIO_MODS_PATH"),
            "server_id_path": env.get("FACTORIO_SERVER_ID_PATH"),
            "lock_path": env.get("FACTORIO_LOCK_PATH"),
            "pid_file": env.get("FACTORIO_PID_FILE"),
        }

        try:
            rcon["response_timeout"] = _millis(env.get("FACTORIO_RCON_TIMEOUT"))
            rcon["connect_timeout"] = _millis(env.get("FACTORIO_RCON_CONNECT_TIMEOUT"))
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

        overrides = {"host": host, "port": port, "password": password}
        rcon.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return cls(
                rcon=RconSettings(**_present(rcon)),
                server=ServerSettings(**_present(server)),
            )
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc


def _millis(value: str | None) -> float | None:
    """Convert a millisecond string to seconds."""
    if value is None or value == "":
        return None
    try:
        return float(value) / 1000.0
    except ValueError:
        raise ValueError(f"Expected a number of milliseconds, got {value!r}") from None


def _present(values: dict) -> dict:
    """Drop unset entries so model defaults apply."""
    return {k: v for k, v in values.items() if v is not None and v != ""}
