import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_key: str = os.getenv("API_KEY", "super-secret-key")

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Management System")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _env_bool("DEBUG", "False")
    log_level: str = os.getenv("LOG_LEVEL", "WARNING")

    # Ledger rules
    default_borrow_days: int = int(os.getenv("LMS_DEFAULT_BORROW_DAYS", "14"))
    require_known_members: bool = _env_bool("LMS_REQUIRE_KNOWN_MEMBERS", "True")

    # Display
    currency_symbol: str = os.getenv("LMS_CURRENCY_SYMBOL", "₹")

    # Seed data; the built-in demo catalog is used when unset
    seed_file: Optional[str] = os.getenv("LMS_SEED_FILE")


settings = Settings()
