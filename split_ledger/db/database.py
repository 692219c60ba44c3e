from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from split_ledger.core.config import settings

DATABASE_URL = settings.DATABASE_URL

# Create engine with appropriate connect_args based on database type
if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(DATABASE_URL, echo=settings.DB_ECHO, connect_args={"check_same_thread": False})
else:
    engine = create_engine(DATABASE_URL, echo=settings.DB_ECHO, pool_pre_ping=True)

# rows stay readable after commit, so a committed write never needs a follow-up read
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
