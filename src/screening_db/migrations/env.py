"""Alembic environment for the screening schema.

Migrations run on the synchronous psycopg2 URL from ``get_sync_url()``;
the application itself uses asyncpg.  Revisions are recorded in
``screening_alembic_version`` so the schema can share a database with
other services.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from screening_db.config import get_sync_url
from screening_db.models import Base  # registers catalog and session tables

VERSION_TABLE = "screening_alembic_version"

config = context.config
config.set_main_option("sqlalchemy.url", get_sync_url())

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=Base.metadata,
        version_table=VERSION_TABLE,
        compare_type=True,
        **kwargs,
    )


if context.is_offline_mode():
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()
else:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()
