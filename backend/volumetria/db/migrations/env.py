"""
Alembic environment for the volumetria schema.

Migrations always go through psycopg2 (DATABASE_URL_SYNC); asyncpg is
only used by the running service. A DATABASE_URL_OVERRIDE pointing at
SQLite switches on batch mode so ALTERs become table copies.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from volumetria.core.config import settings
from volumetria.db.models import Base  # noqa: F401  registers every table on Base.metadata

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

DATABASE_URL = settings.DATABASE_URL_SYNC
config.set_main_option("sqlalchemy.url", DATABASE_URL)


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=Base.metadata,
        compare_type=True,
        render_as_batch=DATABASE_URL.startswith("sqlite"),
        **kwargs,
    )


def run_offline() -> None:
    """Emit SQL to stdout instead of touching a database."""
    _configure(url=DATABASE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = create_engine(DATABASE_URL, poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            _configure(connection=connection)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
