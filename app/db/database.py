from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from app.core.config import settings

# MySQL (aiomysql) en producción; DATABASE_URL puede pisarla
engine = create_async_engine(
    settings.SQLALCHEMY_URL,
    future=True,
    echo=settings.SQL_ECHO,
)

AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session
