from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from app.core.config import settings

engine = create_async_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)

# Reuse the main engine unless embeddings are stored in their own database
if settings.vector_database_url == settings.DATABASE_URL:
    vector_engine = engine
else:
    vector_engine = create_async_engine(
        settings.vector_database_url, echo=settings.SQL_ECHO
    )

# Talk to the DB through async sessions without refreshes after closed conn to avoid errors in async programming
AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)

VectorSessionLocal = async_sessionmaker(
    bind=vector_engine, class_=AsyncSession, expire_on_commit=False
)


# Catalog reads for the routes
async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


# Similarity search reads (product_embeddings and friends)
async def get_vector_db():
    async with VectorSessionLocal() as session:
        yield session


# All the models are "stored" in the Base class will be processed by the Engine
class Base(DeclarativeBase):
    pass
