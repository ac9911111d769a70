from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from assignhub.core.config import DATABASE_URL

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL nao configurada. Defina a variavel de ambiente antes de iniciar a API.")

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    connect_args=connect_args,
)
# expire_on_commit=False: os DTOs sao montados depois do commit, fora da sessao.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
