import os
from logging.config import fileConfig

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool
from sqlmodel import SQLModel

import debt_tracker.models  # noqa: F401  registra user, debt, installment y transaction

load_dotenv()

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Mismo valor por defecto que debt_tracker.core.config, sin exigir SECRET_KEY
database_url = os.getenv("DATABASE_URL", "sqlite:///./debts.db")
config.set_main_option("sqlalchemy.url", database_url)

target_metadata = SQLModel.metadata


def _configure_options(is_sqlite: bool) -> dict:
    # Los montos son Numeric(14, 2): detectar cambios de precisión
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": is_sqlite,
    }


def run_migrations_offline():
    context.configure(
        url=database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(database_url.startswith("sqlite")),
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
        context.configure(
            connection=connection,
            **_configure_options(connection.dialect.name == "sqlite"),
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
