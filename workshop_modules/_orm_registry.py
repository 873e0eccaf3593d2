"""
Module ORM Registry (``workshop_modules._orm_registry``).

Responsibility
--------------
Import every SQLAlchemy ORM module so that ``Base.metadata`` holds the
complete schema before tables are created.

Architecture position
---------------------
**Modules layer** -- utility.  Called lazily by
``workshop_kernel.db.engine.create_tables``; nothing in the kernel imports
it at module level.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``workshop_modules.*.orm`` module.

    Idempotent -- repeated calls are harmless.
    """
    import workshop_kernel.models  # noqa: F401
    # fmt: off
    import workshop_modules.receiving.orm  # noqa: F401
    import workshop_modules.transfers.orm  # noqa: F401
    import workshop_modules.checkout.orm  # noqa: F401
    # fmt: on
