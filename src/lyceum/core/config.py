"""
Lyceum Configuration — single source of truth for all settings.

Reads from environment variables with sensible defaults.
No config files, no YAML. Just env vars (optionally via a .env file).
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _ice_servers_from_env() -> tuple[dict, ...]:
    raw = os.getenv("LYCEUM_ICE_SERVERS", "")
    if not raw:
        return ({"urls": "stun:stun.l.google.com:19302"},)
    return tuple(json.loads(raw))


@dataclass(frozen=True)
class RealtimeConfig:
    """Remote conversational engine + local media settings."""

    realtime_url: str = "https://api.openai.com/v1/realtime"
    model: str = "gpt-realtime"
    voice: str = "sage"
    ice_servers: tuple[dict, ...] = ({"urls": "stun:stun.l.google.com:19302"},)
    data_channel_label: str = "oai-events"
    connect_timeout: float = 15.0
    # Microphone capture via ffmpeg (e.g. "default" + "pulse", "hw:0" + "alsa")
    media_device: str = "default"
    media_format: str = "pulse"
    # Engine audio output; an empty device discards playback
    playback_device: str = "default"
    playback_format: str = "pulse"

    @classmethod
    def from_env(cls) -> RealtimeConfig:
        return cls(
            realtime_url=os.getenv(
                "LYCEUM_REALTIME_URL", "https://api.openai.com/v1/realtime"
            ),
            model=os.getenv("LYCEUM_REALTIME_MODEL", "gpt-realtime"),
            voice=os.getenv("LYCEUM_REALTIME_VOICE", "sage"),
            ice_servers=_ice_servers_from_env(),
            data_channel_label=os.getenv("LYCEUM_DATA_CHANNEL_LABEL", "oai-events"),
            connect_timeout=float(os.getenv("LYCEUM_CONNECT_TIMEOUT", "15.0")),
            media_device=os.getenv("LYCEUM_MEDIA_DEVICE", "default"),
            media_format=os.getenv("LYCEUM_MEDIA_FORMAT", "pulse"),
            playback_device=os.getenv("LYCEUM_PLAYBACK_DEVICE", "default"),
            playback_format=os.getenv("LYCEUM_PLAYBACK_FORMAT", "pulse"),
        )


@dataclass(frozen=True)
class SessionTimingConfig:
    """Time-boxing for one tutorial."""

    max_session_seconds: int = 35 * 60
    time_update_interval: float = 5 * 60.0
    tick_interval: float = 1.0
    restart_window_seconds: int = 5 * 60
    resume_delay: float = 0.2
    selection_display_seconds: float = 3.0
    # Minutes remaining at which the time update escalates
    far_threshold_minutes: int = 10
    near_threshold_minutes: int = 5
    imminent_threshold_minutes: int = 3

    @classmethod
    def from_env(cls) -> SessionTimingConfig:
        return cls(
            max_session_seconds=int(os.getenv("LYCEUM_MAX_SESSION_SECONDS", "2100")),
            time_update_interval=float(
                os.getenv("LYCEUM_TIME_UPDATE_INTERVAL", "300")
            ),
            tick_interval=float(os.getenv("LYCEUM_TICK_INTERVAL", "1.0")),
            restart_window_seconds=int(
                os.getenv("LYCEUM_RESTART_WINDOW_SECONDS", "300")
            ),
            resume_delay=float(os.getenv("LYCEUM_RESUME_DELAY", "0.2")),
            selection_display_seconds=float(
                os.getenv("LYCEUM_SELECTION_DISPLAY_SECONDS", "3.0")
            ),
            far_threshold_minutes=int(os.getenv("LYCEUM_FAR_THRESHOLD_MINUTES", "10")),
            near_threshold_minutes=int(
                os.getenv("LYCEUM_NEAR_THRESHOLD_MINUTES", "5")
            ),
            imminent_threshold_minutes=int(
                os.getenv("LYCEUM_IMMINENT_THRESHOLD_MINUTES", "3")
            ),
        )


@dataclass(frozen=True)
class ApiConfig:
    """Backend collaborator endpoints (credentials, lesson plans, persistence)."""

    base_url: str = "http://localhost:3000"
    token: str = ""
    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> ApiConfig:
        return cls(
            base_url=os.getenv("LYCEUM_API_BASE_URL", "http://localhost:3000"),
            token=os.getenv("LYCEUM_API_TOKEN", ""),
            timeout=float(os.getenv("LYCEUM_API_TIMEOUT", "30.0")),
        )


@dataclass(frozen=True)
class ServerConfig:
    """Local control surface settings."""

    host: str = "127.0.0.1"
    port: int = 8000

    @classmethod
    def from_env(cls) -> ServerConfig:
        return cls(
            host=os.getenv("LYCEUM_HOST", "127.0.0.1"),
            port=int(os.getenv("LYCEUM_PORT", "8000")),
        )


@dataclass(frozen=True)
class LyceumConfig:
    """Root configuration."""

    realtime: RealtimeConfig = field(default_factory=RealtimeConfig)
    timing: SessionTimingConfig = field(default_factory=SessionTimingConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_env(cls) -> LyceumConfig:
        return cls(
            realtime=RealtimeConfig.from_env(),
            timing=SessionTimingConfig.from_env(),
            api=ApiConfig.from_env(),
            server=ServerConfig.from_env(),
        )


# Singleton — import this wherever you need config
config = LyceumConfig.from_env()
