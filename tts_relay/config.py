"""Application configuration loaded from environment variables.

Uses a frozen dataclass for immutable, type-safe settings with validation.
Out-of-range values are clamped back to safe defaults rather than failing
startup. Google Cloud credentials are picked up from the ambient environment
(Application Default Credentials) and are not part of these settings.
"""

import os
from dataclasses import dataclass

FRAMING_ENVELOPE = "envelope"
FRAMING_BINARY = "binary"
_FRAMINGS = (FRAMING_ENVELOPE, FRAMING_BINARY)
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Results at or above this size are streamed but never cached.
_ONE_MIB = 1024 * 1024


def _parse_bool(value: str) -> bool:
    """Parse a boolean from an environment string, accepting common truthy values."""
    return value.strip().lower() in ("true", "1", "yes")


def _parse_int(value: str, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _parse_origins(value: str) -> tuple:
    origins = tuple(o.strip() for o in value.split(",") if o.strip())
    return origins or ("*",)


@dataclass(frozen=True)
class Settings:
    """Immutable application settings populated from environment variables."""

    app_title: str = "Streaming TTS Relay"
    app_version: str = "1.0.0"
    app_description: str = (
        "Relays text from WebSocket clients to Google Cloud Text-to-Speech "
        "and streams the synthesized audio back as it arrives"
    )
    allowed_origins: tuple = ("*",)

    # Google Cloud
    gcp_project_id: str = ""

    # Result cache
    cache_max_size: int = 100
    cache_max_bytes: int = _ONE_MIB

    # Audio
    sample_rate_hertz: int = 24000

    # Relay protocol
    relay_framing: str = FRAMING_ENVELOPE

    # Optional synchronous endpoint
    enable_sync_synthesis: bool = True

    # Server
    port: int = 3001
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate settings after initialisation."""
        if self.cache_max_size < 1:
            object.__setattr__(self, "cache_max_size", 1)
        if self.cache_max_bytes < 1:
            object.__setattr__(self, "cache_max_bytes", 1)
        if self.sample_rate_hertz < 8000 or self.sample_rate_hertz > 48000:
            object.__setattr__(self, "sample_rate_hertz", 24000)
        if self.relay_framing not in _FRAMINGS:
            object.__setattr__(self, "relay_framing", FRAMING_ENVELOPE)
        if self.port < 1 or self.port > 65535:
            object.__setattr__(self, "port", 3001)
        if self.log_level not in _LOG_LEVELS:
            object.__setattr__(self, "log_level", "INFO")

    @classmethod
    def load(cls) -> "Settings":
        """Create a Settings instance from the current environment variables."""
        return cls(
            allowed_origins=_parse_origins(os.environ.get("ALLOWED_ORIGINS", "*")),
            gcp_project_id=os.environ.get("GCP_PROJECT_ID", ""),
            cache_max_size=_parse_int(os.environ.get("CACHE_MAX_SIZE", "100"), 100),
            cache_max_bytes=_parse_int(
                os.environ.get("CACHE_MAX_BYTES", str(_ONE_MIB)), _ONE_MIB
            ),
            sample_rate_hertz=_parse_int(
                os.environ.get("SAMPLE_RATE_HERTZ", "24000"), 24000
            ),
            relay_framing=os.environ.get("RELAY_FRAMING", FRAMING_ENVELOPE).strip().lower(),
            enable_sync_synthesis=_parse_bool(
                os.environ.get("ENABLE_SYNC_SYNTHESIS", "true")
            ),
            port=_parse_int(os.environ.get("PORT", "3001"), 3001),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )


settings = Settings.load()
