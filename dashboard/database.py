from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from dashboard.core import config


engine = create_engine(config.DATABASE_URL, pool_pre_ping=True) if config.DATABASE_URL else None

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_users_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_users_schema(bind=None) -> None:
    """Add profile columns missing from a `users` table created by an older deployment."""
    global _users_schema_checked

    if _users_schema_checked:
        return

    with _schema_lock:
        if _users_schema_checked:
            return

        bind = bind or engine
        inspector = inspect(bind)

        if 'users' not in inspector.get_table_names():
            _users_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('users')}
        migration_steps = [
            ('name', 'ALTER TABLE users ADD COLUMN name VARCHAR'),
            ('role', "ALTER TABLE users ADD COLUMN role VARCHAR DEFAULT 'user'"),
            ('is_verified', 'ALTER TABLE users ADD COLUMN is_verified BOOLEAN DEFAULT FALSE'),
            ('created_at', 'ALTER TABLE users ADD COLUMN created_at TIMESTAMP'),
        ]

        with bind.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_users_created_at ON users(created_at)')
            )

        _users_schema_checked = True


def delete_user_complete(db: Session, user_id: str) -> bool:
    """Remove a user from the credential store and the profile table in one server-side call."""
    result = db.execute(text('SELECT delete_user_complete(CAST(:user_id AS UUID))'), {'user_id': user_id})
    deleted = bool(result.scalar())
    db.commit()
    return deleted
