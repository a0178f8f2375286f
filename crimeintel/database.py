import logging

from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker

from crimeintel.db_models import Base
from crimeintel.geo import EARTH_RADIUS_M, great_circle_m


logger = logging.getLogger(__name__)

GREAT_CIRCLE_FUNCTION = "great_circle_distance"

_POSTGRES_GREAT_CIRCLE = f"""
CREATE OR REPLACE FUNCTION {GREAT_CIRCLE_FUNCTION}(
    lat1 double precision, lon1 double precision, lat2 double precision, lon2 double precision
) RETURNS double precision
LANGUAGE sql IMMUTABLE AS $$
    SELECT 2 * {EARTH_RADIUS_M} * asin(least(1.0, sqrt(
        power(sin(radians(lat2 - lat1) / 2), 2)
        + cos(radians(lat1)) * cos(radians(lat2)) * power(sin(radians(lon2 - lon1) / 2), 2)
    )))
$$
"""


def install_great_circle_function(engine: Engine) -> None:
    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _register(dbapi_connection, _connection_record) -> None:
            dbapi_connection.create_function(GREAT_CIRCLE_FUNCTION, 4, great_circle_m, deterministic=True)

        return

    if engine.dialect.name == "postgresql":
        with engine.begin() as conn:
            conn.execute(text(_POSTGRES_GREAT_CIRCLE))
        return

    logger.warning("no great-circle function available", extra={"dialect": engine.dialect.name})


def build_session_factory(database_url: str) -> sessionmaker[Session]:
    connect_args: dict[str, object] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    engine = create_engine(database_url, future=True, connect_args=connect_args)
    # Registered before the first connection so every pooled connection carries it.
    install_great_circle_function(engine)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
