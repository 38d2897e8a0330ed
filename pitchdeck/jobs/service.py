"""Deck service: creates jobs, runs each on its own thread, and answers record queries for the HTTP layer."""
import logging
import threading
import uuid
from typing import Dict, List, Optional

from pitchdeck.core.config import Settings
from pitchdeck.core.errors import DeckForbiddenError, DeckNotFoundError
from pitchdeck.jobs.context import JobContext
from pitchdeck.jobs.models import Job
from pitchdeck.jobs.progress import ProgressTracker
from pitchdeck.jobs.worker import DeckPipeline
from pitchdeck.models.schemas import PitchDeckData, PitchDeckInfo
from pitchdeck.storage.decks import DeckRepository
from pitchdeck.storage.objects import ObjectStorage

logger = logging.getLogger(__name__)


class DeckService:
    """Create / Get / UpdateVisibility / ListUserDecks / UploadImage over one tracker, pipeline and record store.
    Why available: The single object route handlers talk to; it owns the in-flight jobs and their cancellation contexts."""

    def __init__(
        self,
        tracker: ProgressTracker,
        pipeline: DeckPipeline,
        repository: DeckRepository,
        storage: ObjectStorage,
        settings: Settings,
    ):
        self.tracker = tracker
        self.pipeline = pipeline
        self.repository = repository
        self.storage = storage
        self.settings = settings
        self._jobs: Dict[str, Job] = {}
        self._contexts: Dict[str, JobContext] = {}
        self._threads: Dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

    # -------------------------
    # Create
    # -------------------------

    def create(self, data: PitchDeckData, owner_id: str) -> PitchDeckInfo:
        """Register the job's progress channel and start its run; returns without waiting for any step."""
        job = Job(job_id=str(uuid.uuid4()), owner_id=owner_id, data=data)
        self.tracker.create_channel(job.job_id, owner_id)
        ctx = JobContext(self.settings.job_timeout_seconds)

        thread = threading.Thread(target=self._runner, args=(job, ctx), name=f"deck-{job.job_id}", daemon=True)
        with self._lock:
            self._jobs[job.job_id] = job
            self._contexts[job.job_id] = ctx
            self._threads[job.job_id] = thread
        thread.start()
        logger.info("deck generation started job_id=%s owner=%s", job.job_id, owner_id)
        return job.to_record()

    def _runner(self, job: Job, ctx: JobContext) -> None:
        try:
            self.pipeline.run(job, ctx)
        finally:
            with self._lock:
                self._jobs.pop(job.job_id, None)
                self._contexts.pop(job.job_id, None)
                self._threads.pop(job.job_id, None)

    # -------------------------
    # Queries
    # -------------------------

    def _in_flight(self, deck_id: str) -> Optional[PitchDeckInfo]:
        with self._lock:
            job = self._jobs.get(deck_id)
            return job.to_record() if job else None

    def get(self, deck_id: str, user_id: str) -> PitchDeckInfo:
        """Record of a deck the caller owns, or of a public deck. Anything else is reported as not found."""
        record = self.repository.get(deck_id) or self._in_flight(deck_id)
        if record is None or (record.user_id != user_id and not record.is_public):
            raise DeckNotFoundError(f"deck not found: {deck_id}")
        return record

    def get_public(self, deck_id: str) -> PitchDeckInfo:
        record = self.repository.get(deck_id)
        if record is None or not record.is_public or not record.html_url:
            raise DeckNotFoundError(f"deck not found: {deck_id}")
        return record

    def list_user_decks(self, user_id: str) -> List[PitchDeckInfo]:
        """Persisted decks plus the caller's in-flight jobs, newest first."""
        decks = self.repository.list_by_user(user_id)
        seen = {d.id for d in decks}
        with self._lock:
            running = [j.to_record() for j in self._jobs.values() if j.owner_id == user_id and j.job_id not in seen]
        return sorted(decks + running, key=lambda d: d.created_at, reverse=True)

    def update_visibility(self, deck_id: str, user_id: str, is_public: bool) -> PitchDeckInfo:
        record = self.repository.get(deck_id)
        if record is None:
            raise DeckNotFoundError(f"deck not found: {deck_id}")
        if record.user_id != user_id:
            logger.warning("visibility change refused deck_id=%s caller=%s", deck_id, user_id)
            raise DeckForbiddenError("unauthorized")
        if not self.repository.set_visibility(deck_id, is_public):
            raise DeckNotFoundError(f"deck not found: {deck_id}")
        logger.info("deck visibility updated deck_id=%s is_public=%s", deck_id, is_public)
        return record.model_copy(update={"is_public": is_public})

    # -------------------------
    # Images
    # -------------------------

    def upload_image(self, local_path: str, extension: str, user_id: str) -> str:
        """Store a user image as uploads/<user>/<random><extension> in the image bucket and return its URL.
        The extension decides the type the object is served with, so callers pass one derived from a checked content type."""
        remote_name = f"uploads/{user_id}/{uuid.uuid4()}{extension.lower()}"
        return self.storage.upload_file(
            local_path, self.settings.image_bucket, remote_name, timeout=self.settings.http_timeout_seconds
        )

    # -------------------------
    # Lifecycle
    # -------------------------

    def active_jobs(self) -> int:
        with self._lock:
            return len(self._jobs)

    def shutdown(self, wait: Optional[float] = None) -> None:
        """Cancel every in-flight job; optionally wait up to `wait` seconds for each run to report its failure."""
        with self._lock:
            contexts = list(self._contexts.values())
            threads = list(self._threads.values())
        for ctx in contexts:
            ctx.cancel()
        if contexts:
            logger.info("cancelled %d in-flight job(s)", len(contexts))
        if wait:
            for t in threads:
                t.join(wait)
