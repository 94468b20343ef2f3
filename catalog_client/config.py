import os
from dataclasses import dataclass
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # Backend
    backend_url: str = os.getenv("LIBRARY_BACKEND_URL", "http://127.0.0.1:8080")
    request_timeout: float = float(os.getenv("LIBRARY_REQUEST_TIMEOUT", "10"))
    connect_timeout: float = float(os.getenv("LIBRARY_CONNECT_TIMEOUT", "5"))
    retry_attempts: int = int(os.getenv("LIBRARY_RETRY_ATTEMPTS", "3"))
    retry_backoff: float = float(os.getenv("LIBRARY_RETRY_BACKOFF", "0.5"))

    # Session
    token_file: str = os.getenv(
        "LIBRARY_TOKEN_FILE",
        str(Path.home() / ".library-catalog" / "token"),
    )

    # Book detail
    similar_books_limit: int = int(os.getenv("LIBRARY_SIMILAR_LIMIT", "3"))

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "WARNING").upper()

    # Reference server
    server_host: str = os.getenv("API_HOST", "127.0.0.1")
    server_port: int = int(os.getenv("API_PORT", "8080"))
    seed_admin_username: str = os.getenv("SEED_ADMIN_USERNAME", "admin")
    seed_admin_password: str = os.getenv("SEED_ADMIN_PASSWORD", "admin")
    seed_demo_books: bool = _env_flag("SEED_DEMO_BOOKS", "True")
    loan_period_days: int = int(os.getenv("LOAN_PERIOD_DAYS", "14"))

    app_name: str = os.getenv("APP_NAME", "Library Catalog")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")


settings = Settings()
