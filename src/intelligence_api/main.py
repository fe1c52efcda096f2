"""FastAPI application entry point."""

from fastapi import FastAPI

from intelligence_api.routers import health, intelligence, runs, sources
from pipeline_runs.config import get_config

app = FastAPI(
    title="Market Intelligence API",
    description="Trigger collection runs, poll their progress and read aggregated market intelligence",
    version="1.0.0",
)

# Register routers
app.include_router(health.router)
app.include_router(runs.router)
app.include_router(intelligence.router)
app.include_router(sources.router)


@app.get("/")
def root():
    """API root - returns basic info."""
    return {
        "name": "Market Intelligence API",
        "version": "1.0.0",
        "docs": "/docs",
    }


def main():
    """Run the API server."""
    import uvicorn

    config = get_config()
    uvicorn.run(
        "intelligence_api.main:app",
        host=config.api.host,
        port=config.api.port,
    )


if __name__ == "__main__":
    main()
