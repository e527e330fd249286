from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import deposits, health
from .config import settings
from .core.deposit.orchestrator import close_deposit_orchestrator
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    yield
    await close_deposit_orchestrator()


# Create FastAPI app
app = FastAPI(
    title="GuardX Deposit API",
    description="Cross-chain vault deposit orchestration backend",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(deposits.router, tags=["Deposits"])


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "GuardX Deposit API",
        "version": "0.1.0",
        "description": "Cross-chain vault deposit orchestration backend",
        "docs": "/docs",
        "health": "/healthz",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "guardx.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower()
    )
