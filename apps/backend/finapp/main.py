from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.database import Base, engine
from .core.locks import LockTable
from .core.log_config import setup_logging
from .errors import Conflict, FinanceError, StoreFailure
from .routers import router
from . import models  # noqa: F401 - register tables on Base.metadata

setup_logging(settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Dev convenience; deployed databases are migrated with alembic
    if settings.ENV == "dev":
        Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)

# Process-local lock tables shared by every request of this worker
app.state.generation_locks = LockTable("generation")
app.state.update_locks = LockTable("update")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Retry-After"],
)


@app.exception_handler(FinanceError)
def finance_error_handler(request: Request, exc: FinanceError) -> JSONResponse:
    body: dict = {"detail": exc.detail}
    headers: dict[str, str] = {}
    if isinstance(exc, Conflict):
        headers["Retry-After"] = "1"
    if isinstance(exc, StoreFailure) and exc.deleted_count is not None:
        body["deleted_count"] = exc.deleted_count
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(router, prefix="/api")
