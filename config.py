from dataclasses import dataclass
from functools import lru_cache
import os

TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    strict_members: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000


def load_settings(environ=None) -> Settings:
    """Read service settings from SETTLEUP_* environment variables"""
    environ = os.environ if environ is None else environ
    return Settings(
        strict_members=environ.get("SETTLEUP_STRICT_MEMBERS", "").strip().lower() in TRUE_VALUES,
        log_level=environ.get("SETTLEUP_LOG_LEVEL", "INFO").upper(),
        host=environ.get("SETTLEUP_HOST", "0.0.0.0"),
        port=int(environ.get("SETTLEUP_PORT", "8000")),
    )


@lru_cache()
def get_settings() -> Settings:
    return load_settings()
