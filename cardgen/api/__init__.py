"""API router for v1 endpoints."""

from fastapi import APIRouter

from cardgen.api import generation

router = APIRouter()

router.include_router(generation.router, prefix="/generation", tags=["generation"])
