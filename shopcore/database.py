# shopcore/database.py
from functools import lru_cache

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session

from shopcore.core.config import get_settings

# ---------------------------------------------------------
# Supabase Postgres connection (via pooler)
#
# - sslmode=require   : enforce SSL when running in the cloud
# - pool_size=1       : keep only 1 connection to the Supabase pooler
# - max_overflow=0    : do not open extra connections beyond the pool
# - pool_pre_ping=True: validate connections before using them
#
# Supabase Session mode limits the number of clients, so each process
# keeps a single pooled connection. Non-Postgres URLs (sqlite for local
# runs) use the SQLAlchemy defaults.
# ---------------------------------------------------------


def _with_sslmode(db_url: str) -> str:
    if "sslmode=" in db_url:
        return db_url
    if "?" in db_url:
        return db_url + "&sslmode=require"
    return db_url + "?sslmode=require"


@lru_cache
def get_engine() -> Engine:
    """
    Build the process-wide engine on first use.
    """
    db_url = get_settings().DATABASE_URL

    if db_url.startswith("postgres"):
        return create_engine(
            _with_sslmode(db_url),
            echo=False,        # set to True if you want to debug SQL queries
            pool_pre_ping=True,
            pool_size=1,
            max_overflow=0,
        )

    return create_engine(db_url, echo=False)


def register_models() -> None:
    """
    Import every table module so SQLModel metadata is complete.
    """
    from shopcore.models import user as _user_models  # noqa: F401
    from shopcore.models import taxon as _taxon_models  # noqa: F401
    from shopcore.models import product as _product_models  # noqa: F401
    from shopcore.models import image as _image_models  # noqa: F401
    from shopcore.models import order as _order_models  # noqa: F401


def create_db_and_tables(engine: Engine | None = None) -> None:
    """
    Create all tables defined in SQLModel metadata if they do not exist.
    """
    register_models()
    SQLModel.metadata.create_all(engine or get_engine())


def get_session():
    """
    Yield a SQLModel Session bound to the process engine.

    Usage:

        with contextlib.contextmanager(get_session)() as session:
            ...
    """
    with Session(get_engine()) as session:
        yield session
