"""
Environment-driven settings. Values can also come from a .env file.
"""
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class Settings:
    storage_path: Path = Path(os.getenv("QUICKDROP_STORAGE_DIR", Path(__file__).parent / "storage"))
    ttl_seconds: int = int(os.getenv("QUICKDROP_TTL_SECONDS", "300"))  # 5 minutes
    reaper_interval_seconds: int = int(os.getenv("QUICKDROP_REAPER_INTERVAL_SECONDS", "30"))
    max_upload_mb: int = int(os.getenv("QUICKDROP_MAX_UPLOAD_MB", "768"))
    debug: bool = _env_bool("DEBUG")
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8080"))

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


settings = Settings()
