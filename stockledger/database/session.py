from contextlib import contextmanager

from sqlalchemy.orm import sessionmaker

from stockledger.database.engine import engine

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(db=None):
    """Yield ``db`` if given, otherwise a fresh session closed on exit."""
    if db is not None:
        yield db
        return
    owned = SessionLocal()
    try:
        yield owned
    finally:
        owned.close()
