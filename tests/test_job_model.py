import pytest

from pitchdeck.jobs.models import COMPLETED_MESSAGE, FINAL_STEP, Job, JobStep
from pitchdeck.models.schemas import PitchDeckData


def _job() -> Job:
    return Job(job_id="job-1", owner_id="alice", data=PitchDeckData(project_name="Acme"))


def test_step_sequence_and_messages():
    assert [int(s) for s in JobStep] == list(range(7))
    assert FINAL_STEP == JobStep.UPLOADING
    assert JobStep.INITIALIZING.message == "Initializing generation..."
    assert JobStep.CONVERTING_PDF.failure_message == "Failed to convert to PDF"
    assert JobStep.GENERATING_CONTENT.label == "generating content"


def test_advance_reports_processing_and_never_goes_back():
    job = _job()
    update = job.advance(JobStep.PROCESSING_IMAGES)
    assert (update.status, update.current_step, update.message) == ("processing", 1, "Processing images...")

    job.advance(JobStep.PROCESSING_IMAGES)  # same step again is allowed
    with pytest.raises(ValueError):
        job.advance(JobStep.INITIALIZING)


def test_complete_carries_urls_and_is_terminal():
    job = _job()
    job.advance(JobStep.UPLOADING)
    update = job.complete("https://x/a.pdf", "https://x/a.html")

    assert update.status == "completed"
    assert update.current_step == 6
    assert update.message == COMPLETED_MESSAGE
    assert (update.download_url, update.view_url) == ("https://x/a.pdf", "https://x/a.html")
    with pytest.raises(ValueError):
        job.fail("late failure")
    with pytest.raises(ValueError):
        job.advance(JobStep.UPLOADING)


def test_fail_keeps_failing_step_and_record_shape():
    job = _job()
    job.advance(JobStep.CONVERTING_PDF)
    update = job.fail("Failed to convert to PDF: boom")

    assert (update.status, update.current_step) == ("failed", 4)
    assert update.download_url is None

    record = job.to_record()
    assert record.id == "job-1"
    assert record.user_id == "alice"
    assert record.name == "Acme"
    assert record.status == "failed"
    assert record.is_public is False
    assert record.pdf_url == ""
