from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

# table models register themselves on SQLModel.metadata when imported
from foundit.models.account import Account  # noqa: F401
from foundit.models.document import StoredDocument  # noqa: F401


def create_db_engine(database_url: str):
    kwargs = {}

    if database_url.startswith("sqlite"):
        # handlers run in a threadpool, so the sqlite connection is shared across threads
        kwargs["connect_args"] = {"check_same_thread": False}

        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    return create_engine(database_url, **kwargs)


def init_db(engine):
    SQLModel.metadata.create_all(engine)
    return engine
