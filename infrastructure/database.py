"""
数据库引擎与会话工厂

生产环境使用 postgresql+asyncpg；测试使用 sqlite+aiosqlite。未带异步驱动的
URL（postgresql://、sqlite://）会被补全为对应的异步驱动。
"""
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from core.config import settings
from infrastructure.models import Base


_ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def build_async_url(database_url: str) -> str:
    """确保数据库URL使用异步驱动"""
    url = make_url(database_url)
    if "+" in url.drivername:
        return database_url
    try:
        driver = _ASYNC_DRIVERS[url.drivername]
    except KeyError:
        raise ValueError(
            f"Unsupported database driver: {url.drivername}. Use an async driver in DATABASE__URL"
        ) from None
    return url.set(drivername=driver).render_as_string(hide_password=False)


engine = create_async_engine(
    build_async_url(settings.database.url),
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# expire_on_commit=False: 实体映射在事务结束后仍需读取模型属性
AsyncSessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


async def create_tables() -> None:
    """按模型定义建表（仅开发环境；生产使用 Alembic 迁移）"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
