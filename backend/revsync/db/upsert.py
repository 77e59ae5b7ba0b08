from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session


def dialect_insert(db: Session, table):
    """INSERT construct that supports ON CONFLICT for the bound dialect (PostgreSQL or SQLite)."""
    if db.get_bind().dialect.name == 'postgresql':
        return pg_insert(table)
    return sqlite_insert(table)
