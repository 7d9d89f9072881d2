"""Environment configuration"""

import os
from pathlib import Path
from typing import Callable, TypeVar
from dotenv import load_dotenv


BASE_DIR = Path(__file__).parent.parent

env_path = BASE_DIR / ".env"
load_dotenv(env_path)
T = TypeVar("T")


def _as_bool(value: str) -> bool:
    return value.lower() in ("1", "true", "yes")


def get_env(name: str, default: str, cast: Callable[[str], T] = str) -> T:
    value = os.getenv(name, default)
    try:
        return cast(value)
    except Exception as exc:
        cast_name = getattr(cast, "__name__", repr(cast))
        raise ValueError(f"{name} could not be cast to {cast_name}") from exc


DATABASE_URL = get_env("DATABASE_URL", "sqlite+aiosqlite:///./countries.db")
DATABASE_ECHO = get_env("DATABASE_ECHO", "false", _as_bool)

COUNTRIES_API_URL = get_env(
    "COUNTRIES_API_URL",
    "https://restcountries.com/v2/all?fields=name,capital,region,population,flag,currencies",
)
EXCHANGE_API_URL = get_env("EXCHANGE_API_URL", "https://open.er-api.com/v6/latest/USD")
API_TIMEOUT = get_env("API_TIMEOUT", "10", float)

CACHE_DIR = get_env("CACHE_DIR", str(BASE_DIR / "cache"), Path)
LOG_LEVEL = get_env("LOG_LEVEL", "INFO", str.upper)
