from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Iterator

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from app.config import DATABASE_URL, SQL_ECHO

_is_sqlite = DATABASE_URL.startswith("sqlite")
_connect_args = {"check_same_thread": False} if _is_sqlite else {}

if _is_sqlite and ":memory:" not in DATABASE_URL:
    db_path = DATABASE_URL.replace("sqlite:///", "", 1)
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

engine: Engine = create_engine(
    DATABASE_URL,
    echo=SQL_ECHO,
    connect_args=_connect_args,
)


def get_session() -> Generator[Session, None, None]:
    """Get database session"""
    with Session(engine) as session:
        yield session


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """Commit the enclosed writes as one unit, rolling everything back on error."""
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def init_db() -> None:
    """Initialize database - create all tables"""
    # Import all models to ensure they're registered with SQLModel metadata
    from app.models.match import Match  # noqa: F401
    from app.models.team import Team  # noqa: F401
    from app.models.team_registration import TeamRegistration  # noqa: F401
    from app.models.tournament import Tournament  # noqa: F401

    SQLModel.metadata.create_all(engine)
