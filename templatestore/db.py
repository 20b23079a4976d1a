import os
from pathlib import Path

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    pass


def sqlite_url(sqlite_path: str) -> str:
    raw = (sqlite_path or "").strip() or "data/library.db"
    if raw == ":memory:":
        return "sqlite://"
    p = Path(raw)
    if not p.is_absolute():
        p = (Path.cwd() / p).resolve()
    os.makedirs(p.parent, exist_ok=True)
    return f"sqlite:///{p.as_posix()}"


def create_library_engine(sqlite_path: str) -> Engine:
    url = sqlite_url(sqlite_path)
    kwargs = {}
    if url == "sqlite://":
        # One shared connection, otherwise every worker thread sees its own empty database.
        kwargs["poolclass"] = StaticPool
    engine = create_engine(
        url,
        echo=False,
        future=True,
        connect_args={"check_same_thread": False},
        **kwargs,
    )
    event.listen(engine, "connect", _set_sqlite_pragma)
    return engine


def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    # WAL can fail on some filesystems (network mounts, Docker bind mounts on Windows/WSL2).
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
    except Exception:
        cursor.execute("PRAGMA journal_mode=DELETE")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
