"""API router aggregator."""

from fastapi import APIRouter

from splatgen.api.routes import images, splats

api_router = APIRouter()
api_router.include_router(images.router)
api_router.include_router(splats.router)
