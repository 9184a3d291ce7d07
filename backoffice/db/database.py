import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from backoffice.core.config import settings
from backoffice.core.errors import InternalError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


is_sqlite = settings.database_url.startswith("sqlite")

connect_args = (
    {"check_same_thread": False}
    if is_sqlite
    else {"sslmode": "require"}
)


def configure_sqlite(target: Engine) -> Engine:
    """Let SQLAlchemy own BEGIN/SAVEPOINT on pysqlite and enforce foreign keys."""

    @event.listens_for(target, "connect")
    def _on_connect(dbapi_connection, _):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(target, "begin")
    def _on_begin(connection):
        connection.exec_driver_sql("BEGIN")

    return target


engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.sql_echo,
    pool_pre_ping=not is_sqlite,
    pool_recycle=1800 if not is_sqlite else -1,
)
if is_sqlite:
    configure_sqlite(engine)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session):
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("transaction rolled back after database error")
        raise InternalError("Database error") from exc
    except Exception:
        db.rollback()
        raise
