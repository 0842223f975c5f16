"""
core/config.py
Centralized configuration using environment variables.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent.parent


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # App
    APP_HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT: int = int(os.getenv("APP_PORT", 8000))
    FRONTEND_ORIGIN: str = os.getenv("FRONTEND_ORIGIN", "http://localhost:5173")
    PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")

    # MongoDB
    MONGO_URI: str = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    MONGO_DB_NAME: str = os.getenv("MONGO_DB_NAME", "certificate_generator")

    # Storage ("local" writes to GENERATED_DIR, "s3" uses S3 / MinIO)
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "local")
    GENERATED_DIR: Path = Path(os.getenv("GENERATED_DIR", BASE_DIR / "generated"))
    S3_BUCKET: str = os.getenv("S3_BUCKET", "certificates")
    S3_ENDPOINT_URL: str = os.getenv("S3_ENDPOINT_URL", "")
    S3_PUBLIC_URL: str = os.getenv("S3_PUBLIC_URL", "")
    AWS_ACCESS_KEY_ID: str = os.getenv("AWS_ACCESS_KEY_ID", "")
    AWS_SECRET_ACCESS_KEY: str = os.getenv("AWS_SECRET_ACCESS_KEY", "")
    AWS_REGION: str = os.getenv("AWS_REGION", "us-east-1")

    # Generation
    WORKER_CONCURRENCY: int = int(os.getenv("WORKER_CONCURRENCY", 2))
    RECORD_TIMEOUT_SECONDS: float = float(os.getenv("RECORD_TIMEOUT_SECONDS", 30))
    ESCAPE_PLACEHOLDER_VALUES: bool = _env_bool("ESCAPE_PLACEHOLDER_VALUES", False)
    MAX_UPLOAD_ROWS: int = int(os.getenv("MAX_UPLOAD_ROWS", 10000))

    # Email
    SMTP_HOST: str = os.getenv("SMTP_HOST", "smtp.gmail.com")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", 587))
    SMTP_USERNAME: str = os.getenv("SMTP_USERNAME", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    EMAIL_FROM: str = os.getenv("EMAIL_FROM", os.getenv("SMTP_USERNAME", ""))
    EMAIL_DELAY_SECONDS: float = float(os.getenv("EMAIL_DELAY_SECONDS", 1.0))


settings = Settings()

# Ensure directories exist
settings.GENERATED_DIR.mkdir(parents=True, exist_ok=True)
