"""API router for v1 endpoints."""

from fastapi import APIRouter

from genius_writer.api import generation, usage

router = APIRouter()

# Generation proxy (atomic and SSE streaming)
router.include_router(generation.router, prefix="/ai", tags=["generation"])

# Plan, limits and usage counters
router.include_router(usage.router, prefix="/usage", tags=["usage"])
