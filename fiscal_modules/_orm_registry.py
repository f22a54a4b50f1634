"""
Module ORM Registry (``fiscal_modules._orm_registry``).

Ensures every SQLAlchemy model is imported so that ``Base.metadata`` holds
all table definitions before ``create_all()`` runs.

Usage
-----
``fiscal_kernel.db.engine.create_tables()`` and ``drop_tables()`` call
``import_all_orm_models()``.
"""


def import_all_orm_models() -> None:
    """Import every ORM module. Idempotent."""
    # fmt: off
    import fiscal_ingestion.models  # noqa: F401  # document imports and items
    import fiscal_modules.ap.orm  # noqa: F401
    import fiscal_modules.inventory.orm  # noqa: F401
    # fmt: on
