import os
from dataclasses import dataclass


def _flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "modelo"
    media_root: str = "media"
    media_url: str = "/media"
    port: int = 8000
    watch_changes: bool = False
    log_level: str = "INFO"
    max_sessions: int = 1000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            database_name=os.getenv("DATABASE_NAME", cls.database_name),
            media_root=os.getenv("MEDIA_ROOT", cls.media_root),
            media_url=os.getenv("MEDIA_URL", cls.media_url).rstrip("/"),
            port=int(os.getenv("PORT", cls.port)),
            watch_changes=_flag("MODELO_WATCH_CHANGES"),
            log_level=os.getenv("MODELO_LOG_LEVEL", cls.log_level).upper(),
            max_sessions=int(os.getenv("MODELO_MAX_SESSIONS", cls.max_sessions)),
        )
