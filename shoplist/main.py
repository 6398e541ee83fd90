"""Shared Shopping List API: HTTP intents and live session updates."""

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shoplist.config import Settings, get_settings

# Web app and Expo clients in development; "*" until production origins are pinned
CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:8081",
    "http://localhost:19006",
    "*",
]


def init_sentry(settings: Settings) -> bool:
    """Turn on Sentry when a DSN is configured."""
    if not settings.sentry_dsn:
        print("📊 Sentry disabled (SENTRY_DSN not set)")
        return False
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.2,
        # Lists carry member emails
        send_default_pii=False,
    )
    print(f"📊 Sentry reporting to {settings.environment}")
    return True


settings = get_settings()
init_sentry(settings)

from shoplist.routers import health_router, items_router, lists_router, live_router, session_router
from shoplist.sessions import shutdown_sessions

app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description="Shared shopping lists kept in sync across every member's devices",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in (health_router, session_router, lists_router, items_router, live_router):
    app.include_router(router)


@app.get("/")
async def root():
    return {
        "name": settings.api_title,
        "version": settings.api_version,
        "environment": settings.environment,
        "docs": "/docs",
        "health": "/health",
        "live": "/api/live",
    }


@app.on_event("startup")
async def startup():
    print(f"🚀 {settings.api_title} v{settings.api_version} ({settings.environment})")


@app.on_event("shutdown")
async def shutdown():
    """Stop every session's live streams before the store goes away."""
    await shutdown_sessions()
    print("👋 Shopping list API stopped")
