from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from ..config import settings

# Добавляем параметры кодировки для PostgreSQL
connect_args = {}
engine_options = {}
if settings.DATABASE_URL.startswith("postgresql"):
    connect_args = {"client_encoding": "utf8"}
    engine_options = {"pool_size": 10, "max_overflow": 20, "pool_recycle": 3600}
elif settings.DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=connect_args,
    echo=False,
    **engine_options,
)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

def get_db():
    db = SessionLocal()
    try: yield db
    finally: db.close()

def get_session_factory():
    # автосохранение открывает свою сессию на каждую запись
    return SessionLocal
