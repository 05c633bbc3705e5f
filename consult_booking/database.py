from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy.engine import Engine
from sqlalchemy import event
from .core.config import settings

# Registers every table on SQLModel.metadata
from .db import models  # noqa: F401


def build_engine(db_url: str, echo: bool = False) -> Engine:
    # Choose engine options based on database scheme
    engine_kwargs = {}

    if db_url.startswith("sqlite"):
        # SQLite specific connect args; writers wait on the file lock instead of failing fast
        engine_kwargs.update({
            "connect_args": {"check_same_thread": False, "timeout": 30}
        })
    else:
        # Better resiliency for managed Postgres
        engine_kwargs.update({
            "pool_pre_ping": True,
            "pool_recycle": 300,
            "pool_size": 5,
            "max_overflow": 10,
        })

    new_engine = create_engine(db_url, echo=echo, **engine_kwargs)

    if db_url.startswith("sqlite"):
        @event.listens_for(new_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)


def create_db_and_tables(target: Engine = None):
    SQLModel.metadata.create_all(target or engine)


def get_session():
    with Session(engine) as session:
        yield session
