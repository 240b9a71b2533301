import sqlalchemy
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.ext.asyncio import create_async_engine
from dotenv import load_dotenv
import os
from common.log_handler import log
from contextlib import asynccontextmanager
load_dotenv()


class ElectionEngine(DeclarativeBase):
    pass


def async_database_url(url: str) -> str:
    # the configured url stays sync so alembic can use it as is
    if url.startswith("postgresql://"):
        return f"postgresql+asyncpg{url[10:]}"
    if url.startswith("sqlite://"):
        return f"sqlite+aiosqlite{url[6:]}"
    raise ValueError("DATABASE_URL must start with postgresql:// or sqlite://")


try:
    databasepath = os.getenv("DATABASE_URL")
    if not databasepath or databasepath.strip() == "":
        raise ValueError("DATABASE_URL is not set")
    if databasepath.startswith("sqlite://"):
        election_engine = create_async_engine(async_database_url(databasepath), echo=False)
    else:
        election_engine = create_async_engine(async_database_url(databasepath), echo=False, pool_size=20, max_overflow=10, pool_recycle=3600, pool_pre_ping=True)
except Exception as e:
    log.critical(f"Database connection failed: {e}")
    raise e


class Users(ElectionEngine):
    __tablename__ = 'users'
    id = sqlalchemy.Column(sqlalchemy.Integer, primary_key=True)
    username = sqlalchemy.Column(sqlalchemy.String, unique=True, nullable=False)
    email = sqlalchemy.Column(sqlalchemy.String, unique=True, nullable=False)
    password_hash = sqlalchemy.Column(sqlalchemy.String, nullable=False)
    roles = sqlalchemy.Column(sqlalchemy.JSON, nullable=False, default=list)
    is_active = sqlalchemy.Column(sqlalchemy.Boolean, default=True, nullable=False)
    created_at = sqlalchemy.Column(sqlalchemy.DateTime, server_default=sqlalchemy.func.now())
    last_login = sqlalchemy.Column(sqlalchemy.DateTime, nullable=True)

    two_factor_enabled = sqlalchemy.Column(sqlalchemy.Boolean, default=False, nullable=False)
    two_factor_secret = sqlalchemy.Column(sqlalchemy.String, nullable=True)
    two_factor_method = sqlalchemy.Column(sqlalchemy.String, nullable=True)  # "totp" | "hotp"
    hotp_counter = sqlalchemy.Column(sqlalchemy.Integer, default=0, nullable=False)

    legacy_code = sqlalchemy.Column(sqlalchemy.String, nullable=True)
    legacy_code_expiry = sqlalchemy.Column(sqlalchemy.DateTime, nullable=True)
    legacy_code_used = sqlalchemy.Column(sqlalchemy.Boolean, default=False, nullable=False)


"""
When adding new 2FA columns:
    - clear them in database.users.clear_two_factor, disabling 2FA must not leave anything behind
    - pick them up in twofactor.methods.select_method if they change how a code is checked
you will also need to add an alembic revision
"""

AsyncSessionLocal = sqlalchemy.ext.asyncio.async_sessionmaker(election_engine, class_=sqlalchemy.ext.asyncio.AsyncSession, expire_on_commit=False)

@asynccontextmanager
async def get_session():
    async with AsyncSessionLocal() as session:
        yield session

"""
Aquire this session with:
async with get_session() as session:
"""
