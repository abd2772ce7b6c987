import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from foundit.config import get_settings
from foundit.dependencies import get_cascade, get_feed
from foundit.errors import FoundItError, PostValidationError
from foundit.routers import auth, chats, posts, profile

logger = logging.getLogger(__name__)


async def retry_cascades(interval: float):
    cascade = get_cascade()

    while True:
        await asyncio.sleep(interval)
        if not cascade.pending():
            continue

        outstanding = await asyncio.to_thread(cascade.drain)
        if outstanding:
            logger.info("%d resolve cascade(s) still outstanding", outstanding)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    feed = get_feed()
    retry_task = asyncio.create_task(retry_cascades(settings.cascade_retry_seconds))
    logger.info("FoundIt started (firestore=%s)", settings.use_firestore)

    try:
        yield
    finally:
        retry_task.cancel()
        feed.close()


def handle_foundit_error(request: Request, err: FoundItError):
    logger.warning("%s %d at %s: %s", type(err).__name__, err.status_code, request.url.path, err.message)

    content = {"status": err.status, "message": err.message}
    if isinstance(err, PostValidationError) and err.field:
        content["field"] = err.field

    return JSONResponse(status_code=err.status_code, content=content)


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(title="FoundIt", version="0.1.0", lifespan=lifespan)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(FoundItError, handle_foundit_error)

    # Register routers
    app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
    app.include_router(profile.router, prefix="/profile", tags=["Profile"])
    app.include_router(posts.router, prefix="/posts", tags=["Posts"])
    app.include_router(chats.router, prefix="/chats", tags=["Chats"])

    @app.get("/")
    def root():
        return {"status": "ok"}

    return app


app = create_app()
