import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from app.core.database import engine, vector_engine
from app.api.router import api_router

logging.basicConfig(level=logging.INFO)


# Close the engines once everything is done and close all the sessions
@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await engine.dispose()
    if vector_engine is not engine:
        await vector_engine.dispose()


app = FastAPI(title="Catalog Query API", lifespan=lifespan)

# Include the master router containing all our endpoints
app.include_router(api_router)


@app.get("/")
async def root():
    return {"message": "Welcome to the Catalog Query API"}
