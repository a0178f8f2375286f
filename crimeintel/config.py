from dataclasses import dataclass
import os

from dotenv import load_dotenv


load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    database_url: str
    log_level: str
    archive_url: str
    archive_file_suffix: str
    police_api_url: str
    geocoder_url: str
    output_mode: str
    csv_output_dir: str
    csv_include_header: bool
    partition_key: str
    batch_size: int
    http_connect_timeout_seconds: float
    archive_read_timeout_seconds: float
    http_read_timeout_seconds: float
    rate_limit_delay_seconds: float
    max_http_retries: int
    retry_backoff_seconds: float
    schedule_day: int
    schedule_hour_utc: int
    schedule_minute_utc: int
    run_on_startup: bool
    backfill_months: int


def get_settings() -> Settings:
    return Settings(
        app_name=os.getenv("APP_NAME", "crimeintel"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./crimeintel.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        archive_url=os.getenv("ARCHIVE_URL", "https://data.police.uk/data/archive/latest.zip"),
        archive_file_suffix=os.getenv("ARCHIVE_FILE_SUFFIX", "-northern-ireland-street.csv"),
        police_api_url=os.getenv("POLICE_API_URL", "https://data.police.uk/api"),
        geocoder_url=os.getenv("GEOCODER_URL", "https://api.postcodes.io/postcodes/"),
        output_mode=os.getenv("OUTPUT_MODE", "store").strip().lower(),
        csv_output_dir=os.getenv("CSV_OUTPUT_DIR", "./data/output"),
        csv_include_header=_env_bool("CSV_INCLUDE_HEADER", "true"),
        partition_key=os.getenv("PARTITION_KEY", "NI"),
        batch_size=int(os.getenv("BATCH_SIZE", "1000")),
        http_connect_timeout_seconds=float(os.getenv("HTTP_CONNECT_TIMEOUT_SECONDS", "30")),
        archive_read_timeout_seconds=float(os.getenv("ARCHIVE_READ_TIMEOUT_SECONDS", "1800")),
        http_read_timeout_seconds=float(os.getenv("HTTP_READ_TIMEOUT_SECONDS", "10")),
        rate_limit_delay_seconds=float(os.getenv("RATE_LIMIT_DELAY_SECONDS", "1")),
        max_http_retries=int(os.getenv("MAX_HTTP_RETRIES", "3")),
        retry_backoff_seconds=float(os.getenv("RETRY_BACKOFF_SECONDS", "5")),
        schedule_day=int(os.getenv("SCHEDULE_DAY", "15")),
        schedule_hour_utc=int(os.getenv("SCHEDULE_HOUR_UTC", "2")),
        schedule_minute_utc=int(os.getenv("SCHEDULE_MINUTE_UTC", "0")),
        run_on_startup=_env_bool("RUN_ON_STARTUP", "false"),
        backfill_months=int(os.getenv("BACKFILL_MONTHS", "24")),
    )
