"""FastAPI application."""

from fastapi import FastAPI

from backend.hearthere.api.routes.health import router as health_router
from backend.hearthere.api.routes.metrics import router as metrics_router
from backend.hearthere.api.routes.places import router as places_router
from backend.hearthere.api.routes.suggestions import router as suggestions_router
from backend.hearthere.api.routes.tours import router as tours_router

app = FastAPI(title="HearThere Audioguide API", version="0.1.0")

# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(tours_router, tags=["tours"])
app.include_router(suggestions_router, tags=["suggestions"])
app.include_router(places_router, tags=["places"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "HearThere Audioguide API", "version": "0.1.0"}
