import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://backend-480236425407.us-central1.run.app"
DEFAULT_CONFIG_DIR = Path.home() / ".library-cli"


def _env_timeout() -> Optional[float]:
    raw = os.getenv("LIBRARY_API_TIMEOUT", "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring LIBRARY_API_TIMEOUT={raw!r}: not a number of seconds")
        return None


def _env_base_url() -> str:
    # LIBRARY_API_URL is the older name and is still honoured
    raw = os.getenv("LIBRARY_API_BASE_URL") or os.getenv("LIBRARY_API_URL") or ""
    return raw.strip() or DEFAULT_API_BASE_URL


@dataclass
class Settings:
    # Backend service
    api_base_url: str = field(default_factory=_env_base_url)
    request_timeout: Optional[float] = field(default_factory=_env_timeout)

    # Authentication
    auth_token_file: Path = field(
        default_factory=lambda: Path(
            os.getenv("LIBRARY_AUTH_TOKEN_FILE", str(DEFAULT_CONFIG_DIR / "auth.json"))
        ).expanduser()
    )

    # Application
    app_name: str = os.getenv("APP_NAME", "Library CLI")
    log_level: str = os.getenv("LOG_LEVEL", "WARNING").upper()


settings = Settings()
