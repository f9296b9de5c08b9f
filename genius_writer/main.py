"""FastAPI application entry point."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from genius_writer.api import router as api_router
from genius_writer.core.config import get_settings

settings = get_settings()

app = FastAPI(
    title="Genius Writer",
    description="Reference generation and usage backend for the Genius Writer core",
    version="0.1.0",
)

# The browser build calls the API cross-origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health() -> JSONResponse:
    return JSONResponse(content={"status": "ok", "environment": settings.WRITER_ENV})


app.include_router(api_router, prefix="/v1", tags=["v1"])
