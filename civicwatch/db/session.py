# civicwatch/db/session.py
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from civicwatch.core.config import settings


def make_engine(database_url: str) -> Engine:
    """
    Build an engine for the given URL. SQLite gets thread-sharing enabled,
    in-memory SQLite a single static connection, and foreign keys enforced.
    """
    kwargs = {"pool_pre_ping": True, "future": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}  # required for SQLite + threads
        if database_url in {"sqlite://", "sqlite:///:memory:"}:
            kwargs["poolclass"] = StaticPool

    eng = create_engine(database_url, **kwargs)

    if eng.url.get_backend_name() == "sqlite":

        @event.listens_for(eng, "connect")
        def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.close()

    return eng


def make_session_factory(eng: Engine) -> sessionmaker:
    return sessionmaker(bind=eng, autocommit=False, autoflush=False, future=True)


engine = make_engine(settings.database_url)

SessionLocal = make_session_factory(engine)
