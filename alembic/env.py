from logging.config import fileConfig
from sqlalchemy import pool
from alembic import context
from ovpn_sync.database import Base, make_engine
from ovpn_sync.config import get_settings
from ovpn_sync.models import User, Device  # noqa: F401 - load models

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

DATABASE_URL = get_settings().database_url

# SQLite cannot ALTER constraints in place; batch mode recreates the table
MIGRATION_OPTIONS = {
    "target_metadata": Base.metadata,
    "render_as_batch": DATABASE_URL.startswith("sqlite"),
    "compare_type": True,
}


def run_migrations_offline() -> None:
    """Emit SQL for the configured DATABASE_URL without connecting."""
    context.configure(
        url=DATABASE_URL,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **MIGRATION_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    # A caller may hand over an open connection through config.attributes
    connection = config.attributes.get("connection")
    if connection is not None:
        _migrate(connection)
        return

    engine = make_engine(DATABASE_URL, poolclass=pool.NullPool)
    try:
        with engine.connect() as conn:
            _migrate(conn)
    finally:
        engine.dispose()


def _migrate(connection) -> None:
    context.configure(connection=connection, **MIGRATION_OPTIONS)
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
