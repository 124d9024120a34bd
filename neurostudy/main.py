import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from neurostudy.config import settings
from neurostudy.errors import StudyError
from neurostudy.logging_config import configure_logging
from neurostudy.routes import exports, folders, generation, studies, view
from neurostudy.workspace import Workspace

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Set up logging and a fresh in-memory workspace.  Nothing is persisted,
    so there is nothing to tear down on shutdown."""
    configure_logging()
    app.state.workspace = Workspace()
    if not settings.groq_api_key:
        logger.warning("GROQ_API_KEY is not set; generation endpoints will return 503.")
    yield


app = FastAPI(
    title="neurostudy",
    description="Study guides, slides, quizzes and flashcards generated from your sources",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(folders.router)
app.include_router(studies.router)
app.include_router(generation.router)
app.include_router(exports.router)
app.include_router(view.router)


@app.exception_handler(StudyError)
async def study_error_handler(_request: Request, exc: StudyError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok", "generation_configured": bool(settings.groq_api_key)}
