"""
Read-Only Access Provisioning

The analytics store exposes exactly one consumer credential: a login with
SELECT on every table and view of the store and nothing else.
"""

from typing import List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from manufacturing_analytics.config import get_settings

logger = structlog.get_logger(__name__)


def _quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _quote_identifier(value: str, quote: str = '"') -> str:
    return quote + value.replace(quote, quote * 2) + quote


def read_only_grant_statements(
    dialect_name: str,
    database: str,
    role: str,
    password: str,
) -> List[str]:
    """
    Build the DDL that provisions the read-only login.

    Args:
        dialect_name: SQLAlchemy dialect name ("postgresql" or "mysql")
        database: Analytics database name
        role: Login name to create
        password: Login password

    Raises:
        ValueError: For dialects without a privilege system (e.g. SQLite)
    """
    if dialect_name == "postgresql":
        ident = _quote_identifier(role)
        db_ident = _quote_identifier(database)
        return [
            (
                "DO $$ BEGIN "
                f"IF NOT EXISTS (SELECT FROM pg_roles WHERE rolname = {_quote_literal(role)}) THEN "
                f"CREATE ROLE {ident} LOGIN PASSWORD {_quote_literal(password)}; "
                "END IF; END $$"
            ),
            f"GRANT CONNECT ON DATABASE {db_ident} TO {ident}",
            f"GRANT USAGE ON SCHEMA public TO {ident}",
            f"GRANT SELECT ON ALL TABLES IN SCHEMA public TO {ident}",
            f"ALTER DEFAULT PRIVILEGES IN SCHEMA public GRANT SELECT ON TABLES TO {ident}",
        ]

    if dialect_name in ("mysql", "mariadb"):
        account = f"{_quote_literal(role)}@'%'"
        return [
            f"CREATE USER IF NOT EXISTS {account} IDENTIFIED BY {_quote_literal(password)}",
            f"GRANT SELECT ON {_quote_identifier(database, '`')}.* TO {account}",
            "FLUSH PRIVILEGES",
        ]

    raise ValueError(f"Read-only grants are not supported for dialect: {dialect_name}")


async def grant_read_only_access(
    session: AsyncSession,
    role: Optional[str] = None,
    password: Optional[str] = None,
) -> str:
    """
    Provision the read-only login on the session's database.

    Returns:
        The login name that was granted access
    """
    settings = get_settings()
    role = role or settings.access.user
    password = password or settings.access.password.get_secret_value()

    bind = session.get_bind()
    database = bind.url.database or settings.database.db

    connection = await session.connection()
    for statement in read_only_grant_statements(bind.dialect.name, database, role, password):
        await connection.exec_driver_sql(statement)

    logger.info("Read-only access granted", role=role, database=database)
    return role
