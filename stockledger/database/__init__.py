from stockledger.database.base import Base
from stockledger.database.engine import create_schema, engine
from stockledger.database.session import SessionLocal, get_db, session_scope

__all__ = ["Base", "SessionLocal", "create_schema", "engine", "get_db", "session_scope"]
