"""
Deck pipeline: runs one job through steps 0..6, reporting each step on the job's progress channel.

Every step is announced as processing before its action runs, so a failure at step N has already
been reported as "step N processing". Any error ends the run with exactly one failed event; the
channel is closed exactly once whatever happens.
"""
import logging
import os
import shutil
from typing import Dict, Optional
from urllib.parse import urlparse

from pitchdeck.core.config import Settings
from pitchdeck.core.errors import (
    CollaboratorError,
    CollaboratorTimeoutError,
    JobCancelledError,
    JobTimeoutError,
    TrackerError,
)
from pitchdeck.generation.prompt_builder import build_pitch_deck_prompt
from pitchdeck.generation.providers import ContentGenerator
from pitchdeck.generation.themes import resolve_theme
from pitchdeck.jobs.context import JobContext
from pitchdeck.jobs.models import COMPLETED, Job, JobStep
from pitchdeck.jobs.progress import ProgressTracker
from pitchdeck.models.schemas import ProgressUpdate
from pitchdeck.render.marp import MarpRenderer
from pitchdeck.storage.decks import DeckRepository
from pitchdeck.storage.objects import ObjectStorage

logger = logging.getLogger(__name__)

MARKDOWN_FILE = "presentation.md"
PDF_FILE = "presentation.pdf"
HTML_FILE = "presentation.html"

# (prompt image key, input field)
IMAGE_FIELDS = (
    ("logo", "company_logo"),
    ("team", "team_photo"),
    ("diagram", "diagram"),
)

IMAGE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/svg+xml": ".svg",
}
DEFAULT_IMAGE_EXTENSION = ".jpg"

FETCHABLE_PREFIXES = ("http://", "https://", "/files/")


def image_extension(content_type: str, url: str) -> str:
    """Extension for a downloaded image: Content-Type first, then the URL suffix, then .jpg."""
    ext = IMAGE_EXTENSIONS.get((content_type or "").lower())
    if ext:
        return ext
    suffix = os.path.splitext(urlparse(url).path)[1].lower()
    if suffix == ".jpeg":
        return ".jpg"
    if suffix in IMAGE_EXTENSIONS.values():
        return suffix
    return DEFAULT_IMAGE_EXTENSION


class DeckPipeline:
    """Executes the step sequence for a job against injected collaborators.
    Why available: DeckService starts one run per job on its own thread; tests call run() directly with fakes."""

    def __init__(
        self,
        tracker: ProgressTracker,
        generator: ContentGenerator,
        renderer: MarpRenderer,
        storage: ObjectStorage,
        repository: DeckRepository,
        settings: Settings,
    ):
        self.tracker = tracker
        self.generator = generator
        self.renderer = renderer
        self.storage = storage
        self.repository = repository
        self.settings = settings

    def job_dir(self, job: Job) -> str:
        return os.path.join(self.settings.work_dir, job.job_id)

    # -------------------------
    # Run
    # -------------------------

    def run(self, job: Job, ctx: Optional[JobContext] = None) -> None:
        ctx = ctx or JobContext(self.settings.job_timeout_seconds)
        logger.info("job started job_id=%s owner=%s", job.job_id, job.owner_id)
        try:
            self._run_steps(job, ctx)
        except Exception as e:
            self._fail(job, self._failure_message(job, ctx, e))
        finally:
            self._close(job)
            self._cleanup(job)

    def _run_steps(self, job: Job, ctx: JobContext) -> None:
        s = self.settings
        work = self.job_dir(job)
        theme = resolve_theme((job.data.theme or "").lower())

        self._step(job, ctx, JobStep.INITIALIZING)
        os.makedirs(work, exist_ok=True)

        self._step(job, ctx, JobStep.PROCESSING_IMAGES)
        images = self.fetch_images(job, ctx, work)

        self._step(job, ctx, JobStep.GENERATING_CONTENT)
        prompt = build_pitch_deck_prompt(job.data, images, version=s.prompt_version)
        markdown = self.generator.generate(prompt, timeout=ctx.timeout(s.llm_timeout_seconds))

        self._step(job, ctx, JobStep.SAVING_CONTENT)
        md_path = os.path.join(work, MARKDOWN_FILE)
        with open(md_path, "w", encoding="utf-8") as f:
            f.write(markdown)

        self._step(job, ctx, JobStep.CONVERTING_PDF)
        pdf_path = os.path.join(work, PDF_FILE)
        self.renderer.render(md_path, pdf_path, "pdf", theme, timeout=ctx.timeout(s.render_timeout_seconds))

        self._step(job, ctx, JobStep.CONVERTING_HTML)
        html_path = os.path.join(work, HTML_FILE)
        self.renderer.render(md_path, html_path, "html", theme, timeout=ctx.timeout(s.render_timeout_seconds))

        self._step(job, ctx, JobStep.UPLOADING)
        pdf_url = self.storage.upload_file(
            pdf_path, s.deck_bucket, f"{job.job_id}.pdf", timeout=ctx.timeout(s.http_timeout_seconds)
        )
        html_url = self.storage.upload_file(
            html_path, s.deck_bucket, f"{job.job_id}.html", timeout=ctx.timeout(s.http_timeout_seconds)
        )
        ctx.check()
        record = job.to_record().model_copy(update={"status": COMPLETED, "pdf_url": pdf_url, "html_url": html_url})
        self.repository.save(record)

        self._emit(job, job.complete(pdf_url, html_url))
        logger.info("job completed job_id=%s", job.job_id)

    def _step(self, job: Job, ctx: JobContext, step: JobStep) -> None:
        # Announce first so a step that cannot start is reported as the failing one.
        self._emit(job, job.advance(step))
        ctx.check()

    # -------------------------
    # Images
    # -------------------------

    def fetch_images(self, job: Job, ctx: JobContext, work: str) -> Dict[str, str]:
        """Copy referenced images into the job directory; returns prompt key -> path relative to the markdown file.
        A reference that cannot be fetched is logged and left out of the deck."""
        images: Dict[str, str] = {}
        for key, field_name in IMAGE_FIELDS:
            ref = (getattr(job.data, field_name) or "").strip()
            if not ref:
                continue
            if not ref.startswith(FETCHABLE_PREFIXES):
                images[key] = ref
                continue

            timeout = ctx.timeout(self.settings.http_timeout_seconds)
            partial = os.path.join(work, f"{key}.download")
            try:
                content_type = self.storage.download_file(ref, partial, timeout=timeout)
                name = key + image_extension(content_type, ref)
                os.replace(partial, os.path.join(work, name))
            except (CollaboratorError, OSError) as e:
                logger.warning("image skipped job_id=%s image=%s reason=%s", job.job_id, key, e)
                if os.path.exists(partial):
                    os.remove(partial)
                continue
            images[key] = name
        return images

    # -------------------------
    # Failure, progress, cleanup
    # -------------------------

    def _failure_message(self, job: Job, ctx: JobContext, e: Exception) -> str:
        step = JobStep(job.current_step)
        # A collaborator timeout clamped by the job deadline is the job running out of time.
        remaining = ctx.remaining()
        expired = isinstance(e, CollaboratorTimeoutError) and remaining is not None and remaining <= 0
        if isinstance(e, JobTimeoutError) or expired:
            return f"Job timed out during {step.label}"
        if isinstance(e, JobCancelledError):
            return f"Job cancelled during {step.label}"
        return f"{step.failure_message}: {e}"

    def _fail(self, job: Job, message: str) -> None:
        if job.status == COMPLETED:
            return
        logger.error("job failed job_id=%s step=%s: %s", job.job_id, job.current_step, message)
        self._emit(job, job.fail(message))
        try:
            self.repository.save(job.to_record())
        except Exception:
            logger.exception("could not persist failed status job_id=%s", job.job_id)

    def _emit(self, job: Job, update: ProgressUpdate) -> None:
        try:
            self.tracker.send_update(job.job_id, update)
        except TrackerError as e:
            logger.warning("progress update dropped job_id=%s step=%s: %s", job.job_id, update.current_step, e)

    def _close(self, job: Job) -> None:
        try:
            self.tracker.close_channel(job.job_id)
        except TrackerError as e:
            logger.warning("progress channel already gone job_id=%s: %s", job.job_id, e)

    def _cleanup(self, job: Job) -> None:
        if self.settings.keep_work_files:
            return
        shutil.rmtree(self.job_dir(job), ignore_errors=True)
