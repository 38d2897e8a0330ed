import queue
import threading

import pytest

from pitchdeck.core.errors import (
    ChannelClosedError,
    ChannelExistsError,
    ChannelFullError,
    ChannelNotFoundError,
)
from pitchdeck.jobs.progress import ProgressChannel, ProgressTracker
from pitchdeck.models.schemas import ProgressUpdate

from conftest import parse_events


def _update(step: int, status: str = "processing") -> ProgressUpdate:
    return ProgressUpdate(status=status, current_step=step, message=f"step {step}")


# -------------------------
# Ownership
# -------------------------

def test_owner_gets_channel_others_do_not(tracker: ProgressTracker):
    channel = tracker.create_channel("job-1", "alice")

    assert tracker.get_channel("job-1", "alice") is channel
    assert tracker.get_channel("job-1", "mallory") is None
    assert tracker.get_channel("job-unknown", "alice") is None


def test_duplicate_job_id_is_rejected(tracker: ProgressTracker):
    tracker.create_channel("job-1", "alice")
    with pytest.raises(ChannelExistsError):
        tracker.create_channel("job-1", "bob")
    # the original registration is untouched
    assert tracker.get_channel("job-1", "alice") is not None
    assert tracker.get_channel("job-1", "bob") is None


# -------------------------
# Ordering / delivery
# -------------------------

def test_events_are_received_in_send_order(tracker: ProgressTracker):
    channel = tracker.create_channel("job-1", "alice")
    for step in range(7):
        tracker.send_update("job-1", _update(step))

    received = [channel.receive(timeout=1) for _ in range(7)]
    assert [e["currentStep"] for e in parse_events(received)] == list(range(7))


def test_payload_is_camel_case_json_without_empty_urls(tracker: ProgressTracker):
    channel = tracker.create_channel("job-1", "alice")
    tracker.send_update("job-1", _update(0))
    tracker.send_update(
        "job-1",
        ProgressUpdate(
            status="completed", current_step=6, message="Generation completed",
            download_url="https://x/a.pdf", view_url="https://x/a.html",
        ),
    )

    first, last = parse_events([channel.receive(timeout=1), channel.receive(timeout=1)])
    assert first == {"status": "processing", "currentStep": 0, "message": "step 0"}
    assert last["downloadUrl"] == "https://x/a.pdf"
    assert last["viewUrl"] == "https://x/a.html"


def test_channels_of_different_jobs_are_independent(tracker: ProgressTracker):
    ch1 = tracker.create_channel("job-1", "alice")
    ch2 = tracker.create_channel("job-2", "alice")

    tracker.send_update("job-1", _update(1))
    tracker.send_update("job-1", _update(2))

    with pytest.raises(queue.Empty):
        ch2.receive(timeout=0.05)
    assert len(ch1) == 2


def test_receive_times_out_while_open():
    channel = ProgressChannel("job-1", capacity=2)
    with pytest.raises(queue.Empty):
        channel.receive(timeout=0.05)


# -------------------------
# Close
# -------------------------

def test_close_removes_registration_and_rejects_later_sends(tracker: ProgressTracker):
    tracker.create_channel("job-1", "alice")
    tracker.close_channel("job-1")

    assert tracker.get_channel("job-1", "alice") is None
    assert "job-1" not in tracker
    assert tracker.active_jobs() == 0
    with pytest.raises(ChannelNotFoundError):
        tracker.send_update("job-1", _update(0))


def test_second_close_is_an_error_not_a_crash(tracker: ProgressTracker):
    tracker.create_channel("job-1", "alice")
    tracker.close_channel("job-1")
    with pytest.raises(ChannelNotFoundError):
        tracker.close_channel("job-1")


def test_buffered_events_drain_after_close(tracker: ProgressTracker):
    channel = tracker.create_channel("job-1", "alice")
    tracker.send_update("job-1", _update(0))
    tracker.send_update("job-1", _update(1, status="failed"))
    tracker.close_channel("job-1")

    events = parse_events(list(channel))
    assert [e["status"] for e in events] == ["processing", "failed"]
    with pytest.raises(ChannelClosedError):
        channel.receive(timeout=0.05)


def test_send_on_closed_channel_raises():
    channel = ProgressChannel("job-1")
    channel.close()
    with pytest.raises(ChannelClosedError):
        channel.send("{}")


def test_full_channel_times_out_instead_of_blocking_forever():
    tracker = ProgressTracker(capacity=2, send_timeout=0.05)
    tracker.create_channel("job-1", "alice")
    tracker.send_update("job-1", _update(0))
    tracker.send_update("job-1", _update(1))

    with pytest.raises(ChannelFullError):
        tracker.send_update("job-1", _update(2))


def test_every_reader_stops_when_channel_closes(tracker: ProgressTracker):
    channel = tracker.create_channel("job-1", "alice")
    received = []
    lock = threading.Lock()

    def reader():
        for payload in channel:
            with lock:
                received.append(payload)

    readers = [threading.Thread(target=reader) for _ in range(3)]
    for t in readers:
        t.start()

    for step in range(5):
        tracker.send_update("job-1", _update(step))
    tracker.close_channel("job-1")

    for t in readers:
        t.join(timeout=2)
    assert not any(t.is_alive() for t in readers)
    # point-to-point: each event went to exactly one reader
    assert sorted(e["currentStep"] for e in parse_events(received)) == list(range(5))


def test_invalid_capacity():
    with pytest.raises(ValueError):
        ProgressChannel("job-1", capacity=0)
