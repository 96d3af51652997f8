"""Alembic environment for the reporting tables.

Only the ``progress_*`` tables belong to this service; the LMS tables are
mapped for querying but owned by the host, so autogenerate ignores them.

Usage:
    cd backend && DATABASE_URL=mysql+mysqlconnector://... alembic upgrade head
"""
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from progress_api.core.config import settings
from progress_api.db.base import Base
import progress_api.models  # noqa: F401

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

config.set_main_option('sqlalchemy.url', settings.database_url.replace('%', '%%'))
target_metadata = Base.metadata

OWNED_TABLE_PREFIX = 'progress_'


def include_object(object, name, type_, reflected, compare_to):
    """Restrict autogenerate to the reporting tables."""
    if type_ == 'table':
        return str(name).startswith(OWNED_TABLE_PREFIX)
    return True


def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option('sqlalchemy.url'),
        target_metadata=target_metadata,
        include_object=include_object,
        literal_binds=True,
        dialect_opts={'paramstyle': 'named'},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix='sqlalchemy.',
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=include_object,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
