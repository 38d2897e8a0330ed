import threading
from datetime import datetime, timedelta, timezone

import pytest

from pitchdeck.core.errors import DeckForbiddenError, DeckNotFoundError
from pitchdeck.models.schemas import PitchDeckData, PitchDeckInfo

from conftest import FakeGenerator, parse_events


@pytest.fixture
def gate():
    event = threading.Event()
    yield event
    event.set()


def _seed(repository, deck_id="deck-1", owner="alice", is_public=False, age_minutes=0) -> PitchDeckInfo:
    record = PitchDeckInfo(
        id=deck_id,
        user_id=owner,
        name="Acme",
        pdf_url=f"https://cdn.test/pitch-decks/{deck_id}.pdf",
        html_url=f"https://cdn.test/pitch-decks/{deck_id}.html",
        is_public=is_public,
        status="completed",
        created_at=datetime.now(timezone.utc) - timedelta(minutes=age_minutes),
    )
    repository.save(record)
    return record


# -------------------------
# Create / progress
# -------------------------

def test_create_returns_before_the_job_runs(make_service, tracker, gate):
    service = make_service(generator=FakeGenerator(gate=gate))

    info = service.create(PitchDeckData(project_name="Acme"), "alice")

    assert info.status == "processing"
    assert info.user_id == "alice"
    assert info.name == "Acme"
    assert tracker.get_channel(info.id, "alice") is not None
    assert service.get(info.id, "alice").status == "processing"
    assert [d.id for d in service.list_user_decks("alice")] == [info.id]


def test_two_jobs_of_one_owner_have_independent_channels(make_service, tracker, gate):
    service = make_service(generator=FakeGenerator(gate=gate))
    first = service.create(PitchDeckData(project_name="One"), "alice")
    second = service.create(PitchDeckData(project_name="Two"), "alice")
    assert first.id != second.id

    ch1 = tracker.get_channel(first.id, "alice")
    ch2 = tracker.get_channel(second.id, "alice")
    gate.set()

    events1 = parse_events(list(ch1))
    events2 = parse_events(list(ch2))

    assert len(events1) == len(events2) == 8
    assert first.id in events1[-1]["downloadUrl"]
    assert second.id in events2[-1]["downloadUrl"]
    assert all(second.id not in e.get("downloadUrl", "") for e in events1)
    assert all(first.id not in e.get("downloadUrl", "") for e in events2)


def test_finished_job_is_answered_from_the_record_store(make_service, tracker):
    service = make_service()
    info = service.create(PitchDeckData(project_name="Acme"), "alice")
    channel = tracker.get_channel(info.id, "alice")
    if channel is not None:
        list(channel)
    service.shutdown(wait=2)

    record = service.get(info.id, "alice")
    assert record.status == "completed"
    assert record.html_url.endswith(f"{info.id}.html")
    assert tracker.get_channel(info.id, "alice") is None
    with pytest.raises(DeckNotFoundError):
        service.get(info.id, "bob")


def test_shutdown_cancels_in_flight_jobs(make_service, tracker, repository, gate):
    service = make_service(generator=FakeGenerator(gate=gate))
    info = service.create(PitchDeckData(project_name="Acme"), "alice")
    channel = tracker.get_channel(info.id, "alice")

    service.shutdown()
    gate.set()
    events = parse_events(list(channel))

    assert events[-1]["status"] == "failed"
    assert events[-1]["message"].startswith("Job cancelled during ")
    service.shutdown(wait=2)
    assert service.active_jobs() == 0
    assert repository.get(info.id).status == "failed"


# -------------------------
# Visibility / queries
# -------------------------

def test_owner_toggles_visibility(make_service, repository):
    service = make_service()
    _seed(repository)

    service.update_visibility("deck-1", "alice", True)
    assert service.get("deck-1", "alice").is_public is True

    service.update_visibility("deck-1", "alice", False)
    assert repository.get("deck-1").is_public is False


def test_non_owner_cannot_change_visibility(make_service, repository):
    service = make_service()
    _seed(repository)

    with pytest.raises(DeckForbiddenError):
        service.update_visibility("deck-1", "mallory", True)
    assert repository.get("deck-1").is_public is False
    with pytest.raises(DeckNotFoundError):
        service.update_visibility("deck-404", "alice", True)


def test_public_decks_are_readable_by_anyone(make_service, repository):
    service = make_service()
    _seed(repository, "deck-pub", is_public=True)
    _seed(repository, "deck-priv")

    assert service.get("deck-pub", "bob").id == "deck-pub"
    assert service.get_public("deck-pub").html_url.endswith("deck-pub.html")
    with pytest.raises(DeckNotFoundError):
        service.get("deck-priv", "bob")
    with pytest.raises(DeckNotFoundError):
        service.get_public("deck-priv")


def test_list_user_decks_only_returns_own_decks_newest_first(make_service, repository):
    service = make_service()
    _seed(repository, "deck-old", age_minutes=30)
    _seed(repository, "deck-new", age_minutes=1)
    _seed(repository, "deck-bob", owner="bob")

    assert [d.id for d in service.list_user_decks("alice")] == ["deck-new", "deck-old"]


# -------------------------
# Images
# -------------------------

def test_upload_image_goes_to_user_folder(make_service, storage, tmp_path):
    service = make_service()
    path = tmp_path / "logo.png"
    path.write_bytes(b"\x89PNG")

    url = service.upload_image(str(path), ".PNG", "alice")

    bucket, name, content = storage.uploads[-1]
    assert bucket == "user-media"
    assert name.startswith("uploads/alice/") and name.endswith(".png")
    assert content == b"\x89PNG"
    assert url == f"https://cdn.test/user-media/{name}"
