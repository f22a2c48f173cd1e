"""
Module ORM Registry (``textile_modules._orm_registry``).

Responsibility
--------------
Ensure all module-level SQLAlchemy ORM models are imported so that
``Base.metadata`` contains their table definitions before tables are
created.

``textile_kernel.db.engine.create_tables`` calls it before ``create_all``.

Architecture position
---------------------
**Modules layer** -- utility.  Imports kernel models and sibling
``textile_modules`` ORM packages.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``textile_modules.*.orm`` module.

    Kernel models must be registered first; module tables carry foreign
    keys to ``items`` and ``stock_movements``.  Idempotent.
    """
    import textile_kernel.models  # noqa: F401
    # fmt: off
    import textile_modules.procurement.orm  # noqa: F401
    import textile_modules.production.orm  # noqa: F401
    import textile_modules.inventory.orm  # noqa: F401
    import textile_modules.returns.orm  # noqa: F401
    # fmt: on

