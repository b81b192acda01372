from typing import Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from ultrabms.core.config import settings
from ultrabms.db.models import Base


def build_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    return create_engine(
        url or settings.DATABASE_URL,
        echo=settings.SQL_ECHO if echo is None else echo,
    )


def build_session_maker(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


def create_schema(engine: Engine) -> None:
    """Create tables if missing (dev and tests)."""
    Base.metadata.create_all(engine)
