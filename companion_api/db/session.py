from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from companion_api.core.config import SQLALCHEMY_DATABASE_URI, SQL_ECHO

# SQLite connections are shared between the request thread and the threadpool
connect_args = {"check_same_thread": False} if SQLALCHEMY_DATABASE_URI.startswith("sqlite") else {}

engine = create_engine(SQLALCHEMY_DATABASE_URI, pool_pre_ping=True, echo=SQL_ECHO, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def get_db():
    """One session per request, closed when the response is sent."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
