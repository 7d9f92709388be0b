"""Directory Sync Web Application."""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app import models  # noqa: F401  (registers tables on SQLModel.metadata)
from app.core.config import settings
from app.core.database import create_db_and_tables, engine
from app.directory.client import DirectoryClient
from app.directory.progress import ProgressReporter
from app.directory.sync import SyncOrchestrator
from app.routes import events, people, sync

# Configure logging
log_dir = Path.home() / ".logs" / "directory-sync"
log_dir.mkdir(parents=True, exist_ok=True)
log_file = log_dir / "latest.log"

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    filename=str(log_file),
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    # Startup
    logger.info("Starting Directory Sync application")
    create_db_and_tables()
    client = DirectoryClient.from_settings(settings)
    orchestrator = SyncOrchestrator(engine, client, ProgressReporter(), settings)
    app.state.orchestrator = orchestrator
    orchestrator.start()
    yield
    # Shutdown
    orchestrator.stop()
    client.close()
    logger.info("Directory Sync application shut down")


app = FastAPI(
    title=settings.app_name,
    description="Keeps a local copy of events, people and attendance from the upstream directory",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS for external access
origins = (
    ["*"]
    if settings.allowed_origins == "*"
    else [o.strip() for o in settings.allowed_origins.split(",")]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(events.router)
app.include_router(people.router)
app.include_router(sync.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}
