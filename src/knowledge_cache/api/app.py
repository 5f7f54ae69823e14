from typing import Any

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware

from knowledge_cache.api.dependencies import HandlerDep, lifespan
from knowledge_cache.config import settings
from knowledge_cache.dto import (
    FeedbackRequest,
    FeedbackResponse,
    HealthCheckResponse,
    MaintenanceRequest,
    MaintenanceResponse,
    RespondRequest,
    RespondResponse,
    SearchResponse,
    StatsResponse,
)

app = FastAPI(
    title="Knowledge Cache API",
    description="Semantic response cache in front of the report interpretation model",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,  # type: ignore[arg-type]
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint with API information."""
    return {
        "name": "Knowledge Cache API",
        "version": "0.1.0",
        "description": "Semantic response cache in front of the report interpretation model",
        "endpoints": {
            "respond": "/knowledge/respond",
            "feedback": "/knowledge/feedback",
            "stats": "/knowledge/stats",
            "maintenance": "/knowledge/maintenance",
            "search": "/knowledge/search",
            "health": "/health",
            "docs": "/docs",
        },
    }


@app.get("/health", response_model=HealthCheckResponse)
async def health(handler: HandlerDep) -> HealthCheckResponse:
    """Health check endpoint."""
    return await handler.health_check()


@app.post("/knowledge/respond", response_model=RespondResponse)
async def respond(request: RespondRequest, handler: HandlerDep) -> RespondResponse:
    """
    Answer a query from the knowledge base, or generate and remember it.

    Args:
        request: Query, category, optional context and deadline.

    Returns:
        The response with its source, confidence and similarity.
    """
    return await handler.respond(request)


@app.post("/knowledge/feedback", response_model=FeedbackResponse)
async def feedback(request: FeedbackRequest, handler: HandlerDep) -> FeedbackResponse:
    """Rate a response to adjust the confidence of its entry."""
    return await handler.submit_feedback(request)


@app.get("/knowledge/stats", response_model=StatsResponse)
async def stats(handler: HandlerDep) -> StatsResponse:
    """Get knowledge base statistics and estimated savings."""
    return await handler.get_stats()


@app.post("/knowledge/maintenance", response_model=MaintenanceResponse)
async def maintenance(handler: HandlerDep, request: MaintenanceRequest | None = None) -> MaintenanceResponse:
    """Delete low-confidence and stale unused entries."""
    return await handler.perform_maintenance(request or MaintenanceRequest())


@app.get("/knowledge/search", response_model=SearchResponse)
async def search(
    handler: HandlerDep,
    q: str = Query(..., min_length=1, description="Words to look for in queries and topics"),
    limit: int = Query(10, ge=1, le=100),
) -> SearchResponse:
    """Lexical search over stored queries, for browsing and diagnostics."""
    return await handler.search(q, limit)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "knowledge_cache.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
