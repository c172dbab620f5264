import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

from bibliodesk.models import LOW_STOCK_THRESHOLD

load_dotenv()


def _env_bool(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # Database settings
    database_file: str = os.getenv("LIBRARY_DB_FILE", "library.db")
    pool_size: int = int(os.getenv("DATABASE_POOL_SIZE", "5"))

    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_key: str = os.getenv("API_KEY", "super-secret-key")

    # Reports
    reports_dir: str = os.getenv("BIBLIODESK_REPORTS_DIR", str(Path.home() / "Desktop"))
    open_reports: bool = _env_bool("BIBLIODESK_OPEN_REPORTS", "True")

    # Circulation rules
    default_loan_days: int = int(os.getenv("DEFAULT_LOAN_DAYS", "14"))
    max_loan_days: int = int(os.getenv("MAX_LOAN_DAYS", "90"))
    max_renewal_days: int = int(os.getenv("MAX_RENEWAL_DAYS", "30"))
    low_stock_threshold: int = int(os.getenv("LOW_STOCK_THRESHOLD", str(LOW_STOCK_THRESHOLD)))

    # Initial admin account, created only when the users table is empty
    admin_username: Optional[str] = os.getenv("BIBLIODESK_ADMIN_USERNAME", "admin")
    admin_password: Optional[str] = os.getenv("BIBLIODESK_ADMIN_PASSWORD")

    # Application settings
    app_name: str = os.getenv("APP_NAME", "BiblioDesk")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "WARNING").upper()
    debug: bool = _env_bool("DEBUG")


settings = Settings()
