from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from backend project root so it loads regardless of cwd
_BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BACKEND_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./clinic.db"
    database_timeout_seconds: float = 10.0
    create_tables: bool = True

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Clinic
    clinic_timezone: str = "Australia/Sydney"
    availability_window_days: int = 30  # default query range when date_to is omitted
    max_availability_range_days: int = 90

    # Voyager RIS. Leave both voyager_api_url and voyager_hl7_host empty to disable.
    voyager_api_url: str = ""
    voyager_username: str = ""
    voyager_password: str = ""
    voyager_facility_id: str = "AXIS"
    voyager_timeout_seconds: float = 5.0
    voyager_hl7_host: str = ""
    voyager_hl7_port: int = 2575

    # Referral uploads
    referral_storage_dir: str = "./uploads"
    referral_base_url: str = "http://localhost:8000/uploads"
    referral_max_bytes: int = 10 * 1024 * 1024

    # Env
    env: str = "development"

    # Email (SMTP). Leave smtp_host empty to disable sending.
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    from_email: str = ""
    from_name: str = "Axis Imaging"
    site_name: str = "Axis Imaging"
    contact_email: str = "bookings@axisimaging.example"
    contact_phone: str = "02 9000 0000"
    contact_address: str = "Sydney, NSW"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password and self.from_email)

    @property
    def clinic_tz(self) -> ZoneInfo:
        return ZoneInfo(self.clinic_timezone)


settings = Settings()
