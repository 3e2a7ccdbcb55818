"""FastAPI application: visit routes, CORS, process-wide store and service handles."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo import AsyncMongoClient

from notetaker.api import visits, vitals
from notetaker.config import settings
from notetaker.errors import InputValidationError, StorageUnavailable, VisitNotFound
from notetaker.llm.client import SynthesisClient
from notetaker.llm.note_synthesis import NoteSynthesizer
from notetaker.visits.lifecycle import VisitLifecycle
from notetaker.visits.refresh import RefreshCoordinator
from notetaker.visits.store import InMemoryVisitStore, MongoVisitStore
from notetaker.vitals.store import InMemoryBPReadingStore, MongoBPReadingStore

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the store and synthesis handles once; close them on shutdown."""
    mongo_client: AsyncMongoClient | None = None
    if settings.store_backend == "memory":
        logger.warning("Using in-memory visit store; data is lost on restart.")
        app.state.visit_store = InMemoryVisitStore()
        app.state.bp_store = InMemoryBPReadingStore()
    else:
        mongo_client = AsyncMongoClient(
            settings.mongo_uri,
            tz_aware=True,
            serverSelectionTimeoutMS=settings.mongo_server_selection_timeout_ms,
        )
        db = mongo_client[settings.mongo_db]
        app.state.visit_store = MongoVisitStore(db[settings.mongo_visits_collection])
        app.state.bp_store = MongoBPReadingStore(db[settings.mongo_bp_collection])
        logger.info("MongoDB store configured (db: %s)", settings.mongo_db)

    synthesis_client = SynthesisClient(settings)
    synthesizer = NoteSynthesizer(synthesis_client, settings)
    app.state.refresh = RefreshCoordinator()
    app.state.lifecycle = VisitLifecycle(
        app.state.visit_store,
        synthesizer.synthesize,
        app.state.refresh,
    )
    logger.info(
        "Note synthesis configured at: %s (model: %s)",
        settings.synthesis_base_url,
        settings.synthesis_model,
    )
    yield
    logger.info("Shutting down.")
    await synthesis_client.aclose()
    if mongo_client is not None:
        await mongo_client.close()


app = FastAPI(
    title="Virtual Notetaker",
    description="Visit capture and clinical note synthesis",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": message})


@app.exception_handler(InputValidationError)
async def input_validation_handler(request: Request, exc: InputValidationError) -> JSONResponse:
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
    return _error(status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("Malformed body for %s %s", request.method, request.url.path)
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return _error(status.HTTP_400_BAD_REQUEST, message)


@app.exception_handler(VisitNotFound)
async def visit_not_found_handler(request: Request, exc: VisitNotFound) -> JSONResponse:
    return _error(status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(StorageUnavailable)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailable) -> JSONResponse:
    logger.error("Storage unavailable during %s %s: %s", request.method, request.url.path, exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


app.include_router(visits.router, prefix=settings.api_prefix)
app.include_router(vitals.router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "store": settings.store_backend,
        "model": settings.synthesis_model,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "notetaker.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
    )
