import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.api.routes import api_router
from app.auth.router import router as auth_router
from app.core.config import settings
from app.core.logging_config import setup_logging

setup_logging()

app = FastAPI(
    title="ERP Clínico API",
    version="1.0",
    openapi_url="/openapi.json",
)

app.include_router(api_router, prefix="/api")
app.include_router(auth_router)  # expone /auth/*

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_LIST(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["Content-Type", "Authorization", "X-CSRF-Token"],
    expose_headers=["Content-Disposition"],
)

os.makedirs(settings.MEDIA_ROOT, exist_ok=True)
app.mount(f"/{settings.MEDIA_URL.strip('/')}", StaticFiles(directory=settings.MEDIA_ROOT), name="uploads")


@app.get("/health", tags=["health"])
async def health():
    return {"ok": True}
