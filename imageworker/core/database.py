from typing import Optional

from sqlalchemy.engine import Engine, make_url
from sqlmodel import SQLModel, create_engine

# Import ALL models to ensure they're registered with SQLModel.metadata
from imageworker.modules.assets.models import MediaAsset, AssetVersion, Offer, OfferChangeRequest  # noqa: F401


def get_engine(database_url: str, echo: bool = False) -> Engine:
    """Create a synchronous engine; the worker runs one job per process."""
    return create_engine(database_url, echo=echo)


def create_db_and_tables(engine: Engine):
    """Create all tables if they don't exist."""
    SQLModel.metadata.create_all(engine, checkfirst=True)


def redact_url(database_url: Optional[str]) -> Optional[str]:
    """Render a database URL with its password masked, for logging."""
    if not database_url:
        return database_url
    return make_url(database_url).render_as_string(hide_password=True)
