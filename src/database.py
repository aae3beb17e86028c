from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker

from src.config import settings

# PostgreSQL SQLSTATE codes treated as "store unreachable":
# 08xxx connection exceptions, 57P01-57P03 admin shutdown / crash / cannot connect now
CONNECTIVITY_PGCODES = {
    "08000", "08001", "08003", "08004", "08006", "08007",
    "57P01", "57P02", "57P03",
}

CONNECTIVITY_MARKERS = (
    "could not connect",
    "connection refused",
    "could not translate host name",
    "name or service not known",
    "network is unreachable",
    "server closed the connection",
    "connection timed out",
    "timeout expired",
    "terminating connection",
    "unable to open database file",
)


def build_engine(database_url: str = None) -> Engine:
    database_url = database_url or settings.DATABASE_URL
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(
        database_url,
        connect_args=connect_args,
        pool_pre_ping=settings.DB_POOL_PRE_PING,
    )


engine = build_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
Base = declarative_base()


def ping_database(bind: Engine = None) -> None:
    """Run a trivial query; raises whatever the driver raises when unreachable."""
    with (bind or engine).connect() as connection:
        connection.execute(text("SELECT 1"))


def is_connectivity_error(exc: BaseException) -> bool:
    """True when the failure means the store cannot be reached, not that the query is wrong."""
    if isinstance(exc, DisconnectionError):
        return True
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        if not isinstance(exc, (OperationalError, InterfaceError)):
            return False
        pgcode = getattr(exc.orig, "pgcode", None)
        if pgcode in CONNECTIVITY_PGCODES:
            return True
        message = str(exc.orig).lower()
        return any(marker in message for marker in CONNECTIVITY_MARKERS)
    return isinstance(exc, (ConnectionError, TimeoutError))
