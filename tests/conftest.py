import html
import sys
import threading
from pathlib import Path
import json
import pytest

# Ensure repo root is on sys.path so `import pitchdeck...` works in tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pitchdeck.core.config import Settings  # noqa: E402
from pitchdeck.core.errors import RenderError, StorageError  # noqa: E402
from pitchdeck.jobs.progress import ProgressTracker  # noqa: E402
from pitchdeck.jobs.service import DeckService  # noqa: E402
from pitchdeck.jobs.worker import DeckPipeline  # noqa: E402
from pitchdeck.storage.decks import InMemoryDeckRepository  # noqa: E402

JWT_SECRET = "test-jwt-secret-that-is-long-enough-for-hs256"

DECK_MARKDOWN = "---\nmarp: true\ntheme: default\n---\n\n# Acme\n\n---\n\n# Problem\n"


def pretty_json(obj) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False, sort_keys=True)


def parse_events(payloads) -> list:
    """Progress channel payloads (JSON strings) -> list of dicts."""
    return [json.loads(p) for p in payloads]


# -------------------------
# Collaborator fakes
# -------------------------

class FakeGenerator:
    """Returns canned markdown; optionally blocks until `gate` is set, or raises `error`."""

    def __init__(self, markdown: str = DECK_MARKDOWN, error: Exception | None = None, gate: threading.Event | None = None):
        self.markdown = markdown
        self.error = error
        self.gate = gate
        self.prompts = []

    def generate(self, prompt, *, timeout=None):
        self.prompts.append(prompt)
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return self.markdown


class FakeRenderer:
    def __init__(self, fail_on: str | None = None):
        self.fail_on = fail_on
        self.calls = []

    def render(self, md_path, out_path, fmt, theme, *, timeout=None):
        self.calls.append((fmt, theme))
        if fmt == self.fail_on:
            raise RenderError("marp exited with status 1: boom")
        Path(out_path).write_text(f"{fmt} of {Path(md_path).name}")
        return out_path


class FakeStorage:
    """Uploads are recorded and get https://cdn.test/<bucket>/<name>; downloads are served from `images`."""

    def __init__(self, images: dict | None = None):
        self.images = images or {}  # url -> (bytes, content type)
        self.uploads = []

    def upload_file(self, local_path, bucket, remote_name, *, timeout=None):
        self.uploads.append((bucket, remote_name, Path(local_path).read_bytes()))
        return f"https://cdn.test/{bucket}/{remote_name}"

    def download_file(self, url, dest_path, *, timeout=None):
        if url not in self.images:
            raise StorageError(f"failed to download file, status: 404 ({url})")
        content, content_type = self.images[url]
        Path(dest_path).write_bytes(content)
        return content_type


# -------------------------
# Fixtures
# -------------------------

@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        supabase_url="",
        supabase_service_key="",
        supabase_jwt_secret=JWT_SECRET,
        work_dir=str(tmp_path / "work"),
        upload_dir=str(tmp_path / "uploads"),
        local_storage_dir=str(tmp_path / "files"),
        keep_work_files=False,
        prompt_version="v1",
        job_timeout_seconds=30,
        sse_keepalive_seconds=1,
        progress_send_timeout_seconds=1,
        rate_limit_requests=100,
    )


@pytest.fixture
def tracker() -> ProgressTracker:
    return ProgressTracker(capacity=10, send_timeout=1.0)


@pytest.fixture
def repository() -> InMemoryDeckRepository:
    return InMemoryDeckRepository()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def make_pipeline(settings, tracker, repository, storage):
    def _make(generator=None, renderer=None, storage_=None, repository_=None, tracker_=None, settings_=None):
        return DeckPipeline(
            tracker=tracker_ or tracker,
            generator=generator or FakeGenerator(),
            renderer=renderer or FakeRenderer(),
            storage=storage_ or storage,
            repository=repository_ or repository,
            settings=settings_ or settings,
        )
    return _make


@pytest.fixture
def make_service(settings, tracker, repository, storage, make_pipeline):
    def _make(generator=None, renderer=None, tracker_=None):
        t = tracker_ or tracker
        pipeline = make_pipeline(generator=generator, renderer=renderer, tracker_=t)
        return DeckService(t, pipeline, repository, storage, settings)
    return _make


_PRE_STYLE = "background:#0b1020;color:#cfe3ff;padding:10px;border-radius:8px;overflow:auto;"


def _api_log_html(entry: dict) -> str:
    """One logged API call (set by tests as item._api_logs) as a collapsible request/response block."""
    sections = "".join(
        f'<details style="margin:6px 0;"><summary><b>{label}</b></summary>'
        f'<pre style="{_PRE_STYLE}">{html.escape(pretty_json(entry.get(key, {})))}</pre></details>'
        for label, key in (("Request", "request"), ("Response", "response"))
    )
    title = html.escape(entry.get("title", "API Call"))
    return f'<div style="font-family: ui-monospace, Menlo, Consolas, monospace;"><h4 style="margin:8px 0;">{title}</h4>{sections}</div>'


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """Attach the API calls a test logged to its pytest-html report entry."""
    outcome = yield
    rep = outcome.get_result()
    api_logs = getattr(item, "_api_logs", None)
    if rep.when != "call" or not api_logs or not item.config.pluginmanager.hasplugin("html"):
        return

    from pytest_html import extras as html_extras

    rep.extras = getattr(rep, "extras", []) + [html_extras.html(_api_log_html(entry)) for entry in api_logs]
