import logging
import os
import queue
import tempfile
from contextlib import asynccontextmanager
from typing import Iterator, Optional

from fastapi import (
    APIRouter,
    Depends,
    FastAPI,
    File,
    HTTPException,
    Request,
    UploadFile,
)
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles

from pitchdeck.auth.identity import get_current_user_id, get_stream_user_id
from pitchdeck.core.config import Settings, settings as default_settings
from pitchdeck.core.errors import ChannelClosedError
from pitchdeck.generation.providers import get_content_generator
from pitchdeck.generation.themes import available_themes, is_valid_theme
from pitchdeck.guardrails.errors import as_http_error
from pitchdeck.guardrails.rate_limit import SimpleRateLimiter
from pitchdeck.jobs.progress import ProgressChannel, ProgressTracker
from pitchdeck.jobs.service import DeckService
from pitchdeck.jobs.worker import DeckPipeline
from pitchdeck.models.schemas import (
    CreateDeckResponse,
    DeckListResponse,
    LimitsResponse,
    MessageResponse,
    PitchDeckData,
    PitchDeckInfo,
    ThemesResponse,
    UploadImageResponse,
    VisibilityRequest,
)
from pitchdeck.observability.middleware import RequestTimingMiddleware, get_request_id
from pitchdeck.render.marp import MarpRenderer
from pitchdeck.storage.decks import InMemoryDeckRepository, SupabaseDeckRepository
from pitchdeck.storage.objects import LocalStorage, SupabaseStorage

logger = logging.getLogger(__name__)

APP_NAME = "Pitch Deck Generator"

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/svg+xml": ".svg",
}

router = APIRouter()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_service(request: Request) -> DeckService:
    return request.app.state.service


def get_tracker(request: Request) -> ProgressTracker:
    return request.app.state.tracker


def get_rate_limiter(request: Request) -> SimpleRateLimiter:
    return request.app.state.rate_limiter


# -------------------------
# Root
# -------------------------

@router.get("/")
def root():
    """Returns a minimal welcome payload with app name and docs URL.
    Why available: Gives clients and load balancers a simple root endpoint to confirm the API is running."""
    return {"app": APP_NAME, "docs": "/docs"}


@router.get("/health")
def health(tracker: ProgressTracker = Depends(get_tracker)):
    """Returns 200 OK with status and the number of decks currently generating."""
    return {"status": "ok", "active_jobs": tracker.active_jobs()}


# -------------------------
# Limits / themes (for clients)
# -------------------------

@router.get("/limits", response_model=LimitsResponse)
def limits(cfg: Settings = Depends(get_settings)):
    """Returns current API limits (max image size, job duration, rate limit window) and the accepted themes.
    Why available: Lets clients validate a form before uploading images or creating a deck."""
    return LimitsResponse(
        max_image_kb=cfg.max_image_kb,
        job_timeout_seconds=cfg.job_timeout_seconds,
        rate_limit_requests=cfg.rate_limit_requests,
        rate_limit_window_seconds=cfg.rate_limit_window_seconds,
        themes=available_themes(),
    )


@router.get("/api/themes", response_model=ThemesResponse)
def themes():
    return ThemesResponse(themes=available_themes())


# -------------------------
# Pitch decks
# -------------------------

@router.post("/api/pitch-decks", response_model=CreateDeckResponse)
def create_pitch_deck(
    data: PitchDeckData,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    service: DeckService = Depends(get_service),
    rate_limiter: SimpleRateLimiter = Depends(get_rate_limiter),
):
    """Validates the deck input, starts a generation job and returns its id immediately. Progress is read from /api/progress/{deckId}.
    Why available: Entry point of the whole pipeline; the job keeps running after this request returns."""
    rate_limiter.check(request, key=user_id)

    if not is_valid_theme((data.theme or "").lower()):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid theme. Choose one of: {', '.join(available_themes())}",
        )

    try:
        info = service.create(data, user_id)
    except Exception as e:
        raise as_http_error(e)

    logger.info("deck requested deck_id=%s request_id=%s", info.id, get_request_id(request))
    return CreateDeckResponse(deck_id=info.id)


@router.get("/api/pitch-decks", response_model=DeckListResponse)
def list_pitch_decks(
    user_id: str = Depends(get_current_user_id),
    service: DeckService = Depends(get_service),
):
    """Returns the caller's decks (persisted and still generating), newest first."""
    try:
        return DeckListResponse(decks=service.list_user_decks(user_id))
    except Exception as e:
        raise as_http_error(e)


@router.get("/api/pitch-decks/{deck_id}", response_model=PitchDeckInfo)
def get_pitch_deck(
    deck_id: str,
    user_id: str = Depends(get_current_user_id),
    service: DeckService = Depends(get_service),
):
    """Returns the deck record if the caller owns it or it is public; 404 otherwise.
    Why available: Lets a client that missed the progress stream learn the final status and artifact URLs."""
    try:
        return service.get(deck_id, user_id)
    except Exception as e:
        raise as_http_error(e)


@router.patch("/api/pitch-decks/{deck_id}/visibility", response_model=MessageResponse)
def update_visibility(
    deck_id: str,
    req: VisibilityRequest,
    user_id: str = Depends(get_current_user_id),
    service: DeckService = Depends(get_service),
):
    """Makes a deck public or private. Only the owner may change it (403 for anyone else)."""
    try:
        service.update_visibility(deck_id, user_id, req.is_public)
    except Exception as e:
        raise as_http_error(e)
    return MessageResponse(message="Visibility updated successfully")


# -------------------------
# Image upload
# -------------------------

@router.post("/api/upload-image", response_model=UploadImageResponse)
async def upload_image(
    request: Request,
    image: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    service: DeckService = Depends(get_service),
    cfg: Settings = Depends(get_settings),
    rate_limiter: SimpleRateLimiter = Depends(get_rate_limiter),
):
    """Stores an image (logo, team photo, diagram) and returns a URL the deck input can reference.
    Why available: Deck images are passed by reference; this is how a client gets a reference for a local file."""
    rate_limiter.check(request, key=user_id)

    content_type = (image.content_type or "").split(";")[0].strip().lower()
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(status_code=400, detail="Unsupported image type. Use JPEG, PNG, GIF, WebP or SVG.")

    content = await image.read()
    if not content:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if len(content) > cfg.max_image_kb * 1024:
        raise HTTPException(status_code=400, detail=f"{image.filename} exceeds {cfg.max_image_kb} KB limit")

    # stored name follows the checked content type; the client filename is only echoed back
    extension = ALLOWED_IMAGE_TYPES[content_type]
    filename = image.filename or f"image{extension}"

    os.makedirs(cfg.upload_dir, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=cfg.upload_dir, suffix=extension)
    try:
        with os.fdopen(fd, "wb") as out:
            out.write(content)
        url = service.upload_image(tmp_path, extension, user_id)
    except Exception as e:
        raise as_http_error(e)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)

    return UploadImageResponse(url=url, filename=filename)


# -------------------------
# Progress stream (SSE)
# -------------------------

def _progress_events(channel: ProgressChannel, keepalive_seconds: float) -> Iterator[str]:
    """Relay every event of the channel in order, with keepalive comments while idle; ends when the job closes it."""
    # Runs in the threadpool. After a disconnect the receive already in progress can still take one
    # event that is never written; later events stay queued for the owner's next stream, and the
    # deck record always holds the final state.
    while True:
        try:
            payload = channel.receive(timeout=keepalive_seconds)
        except queue.Empty:
            yield ": keepalive\n\n"
            continue
        except ChannelClosedError:
            return
        yield f"event: message\ndata: {payload}\n\n"


@router.get("/api/progress/{deck_id}")
def progress(
    deck_id: str,
    user_id: str = Depends(get_stream_user_id),
    tracker: ProgressTracker = Depends(get_tracker),
    cfg: Settings = Depends(get_settings),
):
    """Streams the progress events of a deck being generated as text/event-stream, until it completes or fails.
    Unknown deck, another user's deck and an already finished deck all answer 404; use GET /api/pitch-decks/{deckId} then."""
    channel = tracker.get_channel(deck_id, user_id)
    if channel is None:
        raise HTTPException(status_code=404, detail="No progress found for this deck")

    return StreamingResponse(
        _progress_events(channel, cfg.sse_keepalive_seconds),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# -------------------------
# Public view
# -------------------------

@router.get("/view/{deck_id}")
def view_pitch_deck(deck_id: str, service: DeckService = Depends(get_service)):
    """Redirects to the HTML rendering of a public deck; private or unknown decks answer 404."""
    try:
        record = service.get_public(deck_id)
    except Exception as e:
        raise as_http_error(e)
    return RedirectResponse(record.html_url, status_code=302)


# -------------------------
# App setup
# -------------------------

async def _validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


def build_service(cfg: Settings, tracker: ProgressTracker) -> DeckService:
    """Wire the collaborators: Supabase storage and records when configured, local files and memory otherwise."""
    if cfg.supabase_configured:
        storage = SupabaseStorage(cfg.supabase_url, cfg.supabase_service_key)
        repository = SupabaseDeckRepository(
            cfg.supabase_url, cfg.supabase_service_key, table=cfg.deck_table, timeout=cfg.http_timeout_seconds
        )
    else:
        logger.warning("SUPABASE_URL / SUPABASE_SERVICE_KEY not set: using local file storage and in-memory records")
        storage = LocalStorage(cfg.local_storage_dir)
        repository = InMemoryDeckRepository()

    pipeline = DeckPipeline(
        tracker=tracker,
        generator=get_content_generator(cfg),
        renderer=MarpRenderer(cfg.marp_command),
        storage=storage,
        repository=repository,
        settings=cfg,
    )
    return DeckService(tracker, pipeline, repository, storage, cfg)


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[DeckService] = None,
    tracker: Optional[ProgressTracker] = None,
) -> FastAPI:
    cfg = settings or default_settings
    logging.basicConfig(
        level=cfg.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if tracker is None:
        tracker = service.tracker if service else ProgressTracker(
            capacity=cfg.progress_capacity, send_timeout=cfg.progress_send_timeout_seconds
        )
    if service is None:
        service = build_service(cfg, tracker)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.service.shutdown()

    app = FastAPI(title=APP_NAME, lifespan=lifespan)
    app.state.settings = cfg
    app.state.tracker = tracker
    app.state.service = service
    app.state.rate_limiter = SimpleRateLimiter(
        max_requests=cfg.rate_limit_requests, window_seconds=cfg.rate_limit_window_seconds
    )

    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in cfg.cors_origin.split(",") if o.strip()],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.include_router(router)

    if not cfg.supabase_configured:
        os.makedirs(cfg.local_storage_dir, exist_ok=True)
        app.mount("/files", StaticFiles(directory=cfg.local_storage_dir), name="files")

    return app


app = create_app()
