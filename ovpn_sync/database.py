from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from ovpn_sync.config import get_settings

Base = declarative_base()


def make_engine(database_url: str, **kwargs) -> Engine:
    """Engine for the users/devices database.

    Sync passes and device refreshes open sessions from worker threads, so
    SQLite connections must not be pinned to the thread that created them.
    """
    if database_url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(database_url, pool_pre_ping=True, echo=False, **kwargs)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


engine = make_engine(get_settings().database_url)
SessionLocal = make_session_factory(engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
