import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from sdk_workloads.api.workloads import router as workloads_router
from sdk_workloads.core.dependencies import close_clients, get_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info(f"Using package feed {settings.source_url}")
    yield
    await close_clients()


app = FastAPI(
    title="SDK Workloads",
    version="0.1.0",
    description="Read-only discovery of .NET SDK workload manifests, workload sets and installed SDKs.",
    lifespan=lifespan,
)


@app.get("/health")
async def health() -> dict:
    """
    Lightweight health check endpoint.
    """
    return {"status": "ok"}


app.include_router(workloads_router, prefix="/workloads", tags=["workloads"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sdk_workloads.main:app",
        host="127.0.0.1",
        port=8000,
        reload=False,
    )
