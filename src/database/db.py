from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from config.settings import DATABASE_URL, DATA_DIR

Base = declarative_base()


def _engine_for(url: str):
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection so every session sees the same in-memory database
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


engine = _engine_for(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def make_session_factory(url: str = "sqlite://"):
    """Create an isolated engine with all tables and return its session factory"""
    from . import models  # noqa: F401  (registers tables on Base)
    isolated = _engine_for(url)
    Base.metadata.create_all(bind=isolated)
    return sessionmaker(autocommit=False, autoflush=False, bind=isolated, expire_on_commit=False)


def init_db():
    """Create tables on the configured database"""
    from . import models  # noqa: F401
    if DATABASE_URL.startswith("sqlite:///") and not DATABASE_URL.startswith("sqlite:////"):
        DATA_DIR.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=engine)
