"""Exception hierarchy shared by the RCON client, save store and orchestrator.

Every error carries a stable ``code`` and optional ``details`` text so the
command boundary can turn it into a CommandResult without losing context.
"""


class RconError(Exception):
    """Base class for all errors raised by this package."""

    code = "RCON_ERROR"

    def __init__(self, message: str, details: str | None = None, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class RconConnectionError(RconError):
    """Raised when the TCP connection cannot be established or is lost."""

    code = "CONNECTION_FAILED"

    def __init__(self, details: str | None = None) -> None:
        super().__init__("RCON connection failed", details)


class RconTimeoutError(RconError):
    """Raised when a phase ("connection" or "response") exceeds its deadline."""

    code = "TIMEOUT"

    def __init__(self, phase: str) -> None:
        super().__init__(f"RCON {phase} timeout", f"Operation: {phase}")
        self.phase = phase


class RconAuthenticationError(RconError):
    """Raised when the server echoes request id -1 to an AUTH packet."""

    code = "AUTH_FAILED"

    def __init__(self, details: str | None = None) -> None:
        super().__init__("RCON authentication failed", details)


class RconParseError(RconError):
    """Raised for malformed or incomplete packets."""

    code = "PARSE_ERROR"

    def __init__(self, details: str | None = None) -> None:
        super().__init__("Failed to parse response", details)


class ProcessError(RconError):
    """Raised when the server process cannot be started or never becomes ready."""

    code = "PROCESS_ERROR"

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message, details)


class SaveNotFoundError(RconError):
    """Raised when a referenced save does not exist in the save directory."""

    code = "NOT_FOUND"

    def __init__(self, name: str) -> None:
        super().__init__(f"Save '{name}' not found", f"No save file named '{name}'")
        self.name = name


class OrchestratorBusyError(RconError):
    """Raised when a save swap is requested while another is in progress."""

    code = "BUSY"

    def __init__(self, details: str | None = None) -> None:
        super().__init__("Save swap already in progress", details)


class ConfigError(RconError):
    """Raised when settings fail validation."""

    code = "CONFIG_ERROR"

    def __init__(self, details: str | None = None) -> None:
        super().__init__("Invalid configuration", details)
