from contextlib import contextmanager
import os
from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///data/storefront.db")


def _ensure_sqlite_dir(url: str) -> None:
    # sqlite cannot create missing parent directories itself
    if url.startswith("sqlite:///") and ":memory:" not in url:
        db_path = url.split("sqlite:///")[-1]
        Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


def build_engine(url: str):
    if url.startswith("sqlite") and ":memory:" in url:
        # one shared connection, otherwise every session sees an empty database
        return create_engine(
            url,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    _ensure_sqlite_dir(url)
    return create_engine(url, future=True)


def create_session_factory(engine):
    """Return a ``get_session``-style context manager bound to ``engine``."""
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)

    @contextmanager
    def session_scope():
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return session_scope


def init_db(engine) -> None:
    from ..models.base import Base
    from ..models import cart, favorite, order, otp_entry, payment, product, review  # noqa: F401

    Base.metadata.create_all(engine)


engine = build_engine(DATABASE_URL)
get_session = create_session_factory(engine)
