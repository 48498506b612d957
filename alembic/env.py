import os
import sys
from logging.config import fileConfig

from sqlalchemy import engine_from_config
from sqlalchemy import pool

from alembic import context

# Add the project root to the path so we can import app modules
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

# Import Base and all models to ensure metadata is populated
from app.core.database import Base
import app.models  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def get_database_url():
    """Database URL from the environment, normalized for SQLAlchemy + psycopg2."""
    database_url = os.getenv("DATABASE_URL")

    if not database_url:
        from app.core.config import get_settings
        database_url = get_settings().sqlalchemy_database_uri

    # Hosted Postgres providers hand out postgres:// URLs
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql+psycopg2://", 1)

    if database_url.startswith("postgresql") and "sslmode" not in database_url and os.getenv("DATABASE_SSLMODE"):
        separator = "&" if "?" in database_url else "?"
        database_url = f"{database_url}{separator}sslmode={os.getenv('DATABASE_SSLMODE')}"

    return database_url


def run_migrations_offline() -> None:
    """Emit SQL for the migrations without a database connection."""
    url = get_database_url() if os.getenv("DATABASE_URL") else config.get_main_option("sqlalchemy.url")

    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=url.startswith("sqlite"),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run the migrations against a live connection."""
    database_url = get_database_url()

    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = database_url

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
