import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from starlette.staticfiles import StaticFiles
from starlette.types import Scope

from bug_tracker.api import bugs as bugs_api
from bug_tracker.api import users as users_api
from bug_tracker.api.validation import request_validation_handler
from bug_tracker.config import Settings, get_settings
from bug_tracker.db.session import Database
from bug_tracker.errors import BugTrackerError, NotFoundError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if app.state.database is not None:
        # Injected by the caller (tests); the caller owns its lifecycle.
        yield
        return

    settings: Settings = app.state.settings
    database = Database(settings)
    await database.ping()
    if settings.auto_create_schema:
        await database.create_schema()
    if not settings.jwt_secret:
        logger.warning("JWT_SECRET is empty; session tokens are trivially forgeable")
    app.state.database = database
    try:
        yield
    finally:
        app.state.database = None
        await database.dispose()


async def bug_tracker_error_handler(request: Request, exc: BugTrackerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.context)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


class FrontendFiles(StaticFiles):
    """Built frontend assets; unknown paths fall back to index.html for client-side routes.

    Paths under /api never fall back. The build directory may appear after startup.
    """

    async def check_config(self) -> None:
        if self.directory is not None and Path(self.directory).is_dir():
            await super().check_config()

    async def get_response(self, path: str, scope: Scope):
        if path == "api" or path.startswith("api/"):
            raise NotFoundError(f"Route /{path} not found.")
        try:
            return await super().get_response(path, scope)
        except HTTPException as exc:
            if exc.status_code != 404:
                raise
        try:
            return await super().get_response("index.html", scope)
        except HTTPException as exc:
            if exc.status_code != 404:
                raise
            raise NotFoundError("Frontend build not found.") from None


def create_app(settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="Bug Tracker", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(BugTrackerError, bug_tracker_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(users_api.router, prefix="/api/users", tags=["users"])
    app.include_router(bugs_api.router, prefix="/api/bugs", tags=["bugs"])

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    # Mounted last so API routes and /health take precedence.
    frontend = FrontendFiles(directory=settings.frontend_dist, html=True, check_dir=False)
    app.mount("/", frontend, name="frontend")
    return app


app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s"
    )
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
