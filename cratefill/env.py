import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_DB_PATH = "data/registry.db"
DEFAULT_LOG_DIR = "logs"


def load_env() -> None:
    """Load .env from the working directory if present.
    Variables already set in the environment win.
    """
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path, override=False)


def env_path(name: str, default: str) -> Path:
    return Path(os.getenv(name) or default)


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    return value if value else default
