"""SQLAlchemy base metadata and model registration utilities."""

from importlib import import_module

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for ORM models."""


def import_orm_models() -> None:
    """Import ORM models so metadata is fully populated."""

    modules = (
        "chipin.db.models.profile",
        "chipin.db.models.chip",
        "chipin.db.models.chip_participant",
        "chipin.db.models.chip_objective",
        "chipin.db.models.chip_event",
        "chipin.db.models.pool",
        "chipin.db.models.contribution",
        "chipin.db.models.contribution_payment",
        "chipin.db.models.pool_event",
        "chipin.db.models.webhook_event",
        "chipin.db.models.dispute",
    )
    for module_name in modules:
        import_module(module_name)
