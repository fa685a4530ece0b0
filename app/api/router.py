from fastapi import APIRouter
from app.api.endpoints import query

api_router = APIRouter()

# Combine all sub-routers into one
api_router.include_router(query.router)
