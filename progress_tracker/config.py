"""Environment-driven settings."""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from progress_tracker.models import ThresholdConfig


def load_environment() -> None:
    """Load environment variables from ENV_FILE (default .env) if present."""
    env_path = Path(os.getenv("ENV_FILE", ".env"))
    if env_path.is_file():
        load_dotenv(env_path)


def parse_thresholds(raw: str) -> ThresholdConfig:
    """
    Parse 'no_progress:4,in_progress:10' into a ThresholdConfig.

    Raises:
        ValueError: on malformed pairs or unknown keys
    """
    values = {}
    for item in raw.split(','):
        if not item.strip():
            continue
        key, value = item.split(':')
        key = key.strip()
        if key not in ThresholdConfig.model_fields:
            raise ValueError(f"Unknown threshold '{key}' in STATUS_THRESHOLDS")
        values[key] = int(value.strip())
    return ThresholdConfig(**values)


def _flag(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    thresholds: ThresholdConfig
    report_period: str = "August 2025"
    organization_name: str = "MedTrain"
    course_name: str = "Allergy Asthma Specialist Course"
    support_contact: str = "7975764489"
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_use_tls: bool = True
    smtp_username: str = ""
    smtp_password: str = ""
    mail_from: str = ""
    mail_from_name: str = "MedTrain Team"
    whatsapp_api_url: str = ""
    whatsapp_api_token: str = ""
    whatsapp_template: str = "reportassist"
    whatsapp_timeout: float = 10.0
    max_upload_size_mb: int = 10
    allow_origins: tuple[str, ...] = ("*",)
    log_level: str = "INFO"
    debug: bool = False

    @property
    def max_upload_size(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @classmethod
    def from_env(cls) -> "Settings":
        load_environment()

        allow_origins = tuple(
            origin.strip()
            for origin in os.getenv("ALLOW_ORIGINS", "*").split(",")
            if origin.strip()
        )

        return cls(
            thresholds=parse_thresholds(
                os.getenv("STATUS_THRESHOLDS", "no_progress:4,in_progress:10")
            ),
            report_period=os.getenv("REPORT_PERIOD", "August 2025"),
            organization_name=os.getenv("ORGANIZATION_NAME", "MedTrain"),
            course_name=os.getenv("COURSE_NAME", "Allergy Asthma Specialist Course"),
            support_contact=os.getenv("SUPPORT_CONTACT", "7975764489"),
            smtp_host=os.getenv("SMTP_HOST", ""),
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_use_tls=_flag(os.getenv("SMTP_USE_TLS", "true")),
            smtp_username=os.getenv("SMTP_USERNAME", ""),
            smtp_password=os.getenv("SMTP_PASSWORD", ""),
            mail_from=os.getenv("MAIL_FROM", ""),
            mail_from_name=os.getenv("MAIL_FROM_NAME", "MedTrain Team"),
            whatsapp_api_url=os.getenv("WHATSAPP_API_URL", ""),
            whatsapp_api_token=os.getenv("WHATSAPP_API_TOKEN", ""),
            whatsapp_template=os.getenv("WHATSAPP_TEMPLATE", "reportassist"),
            whatsapp_timeout=float(os.getenv("WHATSAPP_TIMEOUT_SECONDS", "10")),
            max_upload_size_mb=int(os.getenv("MAX_UPLOAD_SIZE_MB", "10")),
            allow_origins=allow_origins or ("*",),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            debug=_flag(os.getenv("DEBUG", "False")),
        )
