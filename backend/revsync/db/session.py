from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from revsync.core.config import settings


def build_engine(database_url: str) -> Engine:
    is_sqlite = database_url.startswith('sqlite')
    connect_args = {'check_same_thread': False, 'timeout': 30} if is_sqlite else {}
    engine_kwargs = {
        'pool_pre_ping': True,
        'connect_args': connect_args,
    }
    if database_url in ('sqlite://', 'sqlite:///:memory:'):
        # In-memory databases only exist inside a single shared connection.
        engine_kwargs['poolclass'] = StaticPool
    elif not is_sqlite:
        engine_kwargs.update(
            {
                'pool_size': max(1, int(settings.db_pool_size or 10)),
                'max_overflow': max(0, int(settings.db_max_overflow or 20)),
                'pool_timeout': max(1, int(settings.db_pool_timeout or 30)),
                'pool_recycle': max(30, int(settings.db_pool_recycle or 1800)),
            }
        )
    built = create_engine(database_url, **engine_kwargs)

    if is_sqlite:
        @event.listens_for(built, 'connect')
        def _sqlite_pragmas(dbapi_connection, _connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA journal_mode=WAL;')
            cursor.execute('PRAGMA busy_timeout=30000;')
            cursor.close()

    return built


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


engine = build_engine(settings.database_url)
SessionLocal = build_session_factory(engine)
