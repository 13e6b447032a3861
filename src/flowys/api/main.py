"""FastAPI application."""
from fastapi import FastAPI

from flowys import __version__
from flowys.api.routes import executions, health, nodes
from flowys.observability import setup_logging

# Setup logging
setup_logging()

# Create FastAPI app
app = FastAPI(
    title="Flowys Engine",
    description="Workflow execution engine",
    version=__version__,
)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(executions.router, tags=["executions"])
app.include_router(nodes.router, tags=["nodes"])


@app.get("/")
def root() -> dict:
    """Root endpoint."""
    return {
        "service": "flowys-engine",
        "version": __version__,
        "docs": "/docs",
    }
