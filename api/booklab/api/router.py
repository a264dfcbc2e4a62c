from fastapi import APIRouter

from booklab.api.routes import actions, health, repositories

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(repositories.router, tags=["repositories"])
api_router.include_router(actions.router, tags=["social"])
