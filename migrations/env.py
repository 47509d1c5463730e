# migrations/env.py
from logging.config import fileConfig
import os
from urllib.parse import quote

from sqlalchemy import engine_from_config, pool
from alembic import context

from policyadmin.db import _parse_mysql_url
from policyadmin.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def get_url() -> str:
    """Same precedence as policyadmin.db.get_conn(), rendered for SQLAlchemy."""
    raw = os.getenv("MYSQL_URL")
    if raw:
        p = _parse_mysql_url(raw)
    else:
        p = {
            "user": os.getenv("MYSQLUSER") or os.getenv("DB_USER"),
            "password": os.getenv("MYSQLPASSWORD") or os.getenv("DB_PASSWORD"),
            "host": os.getenv("MYSQLHOST") or os.getenv("DB_HOST", "localhost"),
            "port": os.getenv("MYSQLPORT") or os.getenv("DB_PORT", "3306"),
            "database": os.getenv("MYSQLDATABASE") or os.getenv("DB_NAME", "policyadmin"),
        }

    if p.get("user") and p.get("password") and p.get("database"):
        return (
            f"mysql+pymysql://{quote(p['user'], safe='')}:{quote(p['password'], safe='')}"
            f"@{p['host']}:{p['port']}/{p['database']}"
        )

    # Local dev only
    return config.get_main_option("sqlalchemy.url") or ""


def run_migrations_offline() -> None:
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section, {})
    url = get_url()
    if not url:
        raise ValueError("Database URL not configured. Set MYSQL_URL or DB_* environment variables.")
    configuration["sqlalchemy.url"] = url

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
