"""Deck generation job: identity, owner, lifecycle state and the ordered step sequence it runs through."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Optional

from pitchdeck.models.schemas import JobStatus, PitchDeckData, PitchDeckInfo, ProgressUpdate

PROCESSING: JobStatus = "processing"
COMPLETED: JobStatus = "completed"
FAILED: JobStatus = "failed"

COMPLETED_MESSAGE = "Generation completed"


class JobStep(IntEnum):
    """Canonical step sequence. Each step reports itself as processing before its action runs."""

    INITIALIZING = 0
    PROCESSING_IMAGES = 1
    GENERATING_CONTENT = 2
    SAVING_CONTENT = 3
    CONVERTING_PDF = 4
    CONVERTING_HTML = 5
    UPLOADING = 6

    @property
    def message(self) -> str:
        return _STEP_MESSAGES[self]

    @property
    def failure_message(self) -> str:
        return _FAILURE_MESSAGES[self]

    @property
    def label(self) -> str:
        return self.name.lower().replace("_", " ")


_STEP_MESSAGES = {
    JobStep.INITIALIZING: "Initializing generation...",
    JobStep.PROCESSING_IMAGES: "Processing images...",
    JobStep.GENERATING_CONTENT: "Generating content...",
    JobStep.SAVING_CONTENT: "Saving presentation...",
    JobStep.CONVERTING_PDF: "Converting to PDF...",
    JobStep.CONVERTING_HTML: "Converting to HTML...",
    JobStep.UPLOADING: "Uploading files...",
}

_FAILURE_MESSAGES = {
    JobStep.INITIALIZING: "Failed to initialize generation",
    JobStep.PROCESSING_IMAGES: "Failed to process images",
    JobStep.GENERATING_CONTENT: "Failed to generate content",
    JobStep.SAVING_CONTENT: "Failed to save markdown",
    JobStep.CONVERTING_PDF: "Failed to convert to PDF",
    JobStep.CONVERTING_HTML: "Failed to convert to HTML",
    JobStep.UPLOADING: "Failed to upload files",
}

FINAL_STEP = max(JobStep)


def is_terminal(status: str) -> bool:
    return status in (COMPLETED, FAILED)


@dataclass
class Job:
    """A single deck generation job: job_id, owner, input, status (processing | completed | failed), current step and result locations.
    Why available: The state the worker advances; its transitions are what subscribers see as progress events."""

    job_id: str
    owner_id: str
    data: PitchDeckData
    status: JobStatus = PROCESSING
    current_step: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    pdf_url: Optional[str] = None
    html_url: Optional[str] = None
    error: Optional[str] = None

    def advance(self, step: JobStep) -> ProgressUpdate:
        """Move to `step` (never backwards) and return the processing event for it."""
        if is_terminal(self.status):
            raise ValueError(f"job {self.job_id} already {self.status}")
        if step < self.current_step:
            raise ValueError(f"job {self.job_id} cannot go back from step {self.current_step} to {int(step)}")
        self.current_step = int(step)
        return ProgressUpdate(status=PROCESSING, current_step=self.current_step, message=step.message)

    def complete(self, pdf_url: str, html_url: str) -> ProgressUpdate:
        if is_terminal(self.status):
            raise ValueError(f"job {self.job_id} already {self.status}")
        self.status = COMPLETED
        self.pdf_url = pdf_url
        self.html_url = html_url
        return ProgressUpdate(
            status=COMPLETED,
            current_step=self.current_step,
            message=COMPLETED_MESSAGE,
            download_url=pdf_url,
            view_url=html_url,
        )

    def fail(self, message: str) -> ProgressUpdate:
        if is_terminal(self.status):
            raise ValueError(f"job {self.job_id} already {self.status}")
        self.status = FAILED
        self.error = message
        return ProgressUpdate(status=FAILED, current_step=self.current_step, message=message)

    def to_record(self) -> PitchDeckInfo:
        return PitchDeckInfo(
            id=self.job_id,
            user_id=self.owner_id,
            name=self.data.project_name,
            pdf_url=self.pdf_url or "",
            html_url=self.html_url or "",
            is_public=False,
            status=self.status,
            created_at=self.created_at,
        )
