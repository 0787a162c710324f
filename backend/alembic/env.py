"""Alembic environment for the crewcall schema.

The connection URL comes from crewcall's own Settings (environment or
``.env``), so migrations and the application always agree on the database.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from crewcall.config import get_settings
from crewcall.database import Base, sync_database_url
import crewcall.models  # noqa: F401 - registers companies, associates, jobs, job_assignments, opt_info

config = context.config
# configparser interpolation treats "%" as special
config.set_main_option("sqlalchemy.url", sync_database_url(get_settings()).replace("%", "%%"))

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _configure(**kwargs):
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)


def run_migrations_offline():
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
