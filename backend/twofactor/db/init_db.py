# backend/twofactor/db/init_db.py
from sqlalchemy.engine import Engine

from twofactor.db.base import Base
from twofactor.db.session import engine as default_engine

# models must be imported so the tables are registered on Base.metadata
from twofactor import models  # noqa: F401


def init_db(engine: Engine | None = None) -> None:
    Base.metadata.create_all(bind=engine or default_engine)
