from collections.abc import Callable
import io
from pathlib import Path
from unittest.mock import MagicMock
import zipfile

import pytest
from sqlalchemy.orm import Session, sessionmaker

from crimeintel.config import Settings
from crimeintel.database import build_session_factory


HEADER = "Month,Reported by,Falls within,Longitude,Latitude,Location,LSOA code,LSOA name,Crime type,Last outcome category,Context"


@pytest.fixture()
def temp_workspace(tmp_path: Path) -> Path:
    (tmp_path / "output").mkdir(parents=True, exist_ok=True)
    return tmp_path


@pytest.fixture()
def test_settings(temp_workspace: Path) -> Settings:
    return Settings(
        app_name="crimeintel",
        database_url=f"sqlite:///{temp_workspace / 'test.db'}",
        log_level="INFO",
        archive_url="https://archive.test/latest.zip",
        archive_file_suffix="-northern-ireland-street.csv",
        police_api_url="https://api.test/api",
        geocoder_url="https://geo.test/postcodes/",
        output_mode="store",
        csv_output_dir=str(temp_workspace / "output"),
        csv_include_header=True,
        partition_key="NI",
        batch_size=2,
        http_connect_timeout_seconds=1,
        archive_read_timeout_seconds=1,
        http_read_timeout_seconds=1,
        rate_limit_delay_seconds=0,
        max_http_retries=2,
        retry_backoff_seconds=0,
        schedule_day=15,
        schedule_hour_utc=2,
        schedule_minute_utc=0,
        run_on_startup=False,
        backfill_months=24,
    )


@pytest.fixture()
def session_factory(test_settings: Settings) -> sessionmaker[Session]:
    return build_session_factory(test_settings.database_url)


def month_lines(rows: list[str]) -> list[str]:
    return [HEADER, *rows]


def crime_line(
    month_key: str,
    *,
    longitude: str = "-5.93",
    latitude: str = "54.597",
    location: str = "On or near High Street",
    crime_type: str = "Burglary",
) -> str:
    return f"{month_key},PSNI,PSNI,{longitude},{latitude},{location},,,{crime_type},"


def build_archive(entries: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, body in entries.items():
            archive.writestr(name, body)
    return buffer.getvalue()


def fake_response(
    status_code: int = 200,
    *,
    json_body: object = None,
    content: bytes = b"",
    chunk_size: int = 97,
) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_body
    response.iter_content.side_effect = lambda *args, **kwargs: iter(
        [content[i : i + chunk_size] for i in range(0, len(content), chunk_size)]
    )
    return response


@pytest.fixture()
def make_session() -> Callable[..., MagicMock]:
    def _make(*responses: MagicMock) -> MagicMock:
        session = MagicMock()
        session.get.side_effect = list(responses)
        return session

    return _make
