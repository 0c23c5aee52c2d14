import asyncio
import logging
import sys
import time
from datetime import timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from screenshot_backup.backups import BackupManager  # noqa: E402
from screenshot_backup.batch import BatchScheduler, partition  # noqa: E402
from screenshot_backup.capture import CaptureWorker  # noqa: E402
from screenshot_backup.config import BatchSettings  # noqa: E402
from screenshot_backup.errors import RenderFailure  # noqa: E402
from screenshot_backup.freshness import FreshnessGate  # noqa: E402
from screenshot_backup.models import Target  # noqa: E402
from screenshot_backup.storage import KeyLayout  # noqa: E402
from fakes import BASE_TIME, FakeBlobStore, FakeContent, FakeRenderer, hours_ago, make_target  # noqa: E402

LOGGER = logging.getLogger("batch-tests")


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def _scheduler(store, renderer, content, *, settings=None, sleep=None):
    layout = KeyLayout()
    clock = lambda: BASE_TIME  # noqa: E731
    return BatchScheduler(
        FreshnessGate(store, layout, LOGGER, window=timedelta(hours=12), clock=clock),
        BackupManager(store, layout, LOGGER, clock=clock),
        CaptureWorker(renderer, store, LOGGER, clock=clock),
        content,
        layout,
        LOGGER,
        settings=settings or BatchSettings(batch_delay_seconds=0),
        sleep=sleep or RecordingSleep(),
    )


def test_partition_keeps_order() -> None:
    targets = [make_target(f"p{i}") for i in range(7)]
    batches = partition(targets, 3)
    assert [len(batch) for batch in batches] == [3, 3, 1]
    assert [target.id for batch in batches for target in batch] == [f"p{i}" for i in range(7)]


def test_stale_target_is_backed_up_recaptured_and_attached_once() -> None:
    store = FakeBlobStore()
    store.put("screenshots/p1/1_viewport.jpg", b"old", last_modified=hours_ago(13))
    content = FakeContent()
    scheduler = _scheduler(store, FakeRenderer(), content)

    summary = asyncio.run(scheduler.process([make_target("p1", name="Alpha")]))

    assert (summary.captured, summary.skipped, summary.failed, summary.timed_out) == (1, 0, 0, 0)
    assert "screenshots/p1/1_viewport.jpg" not in store.objects
    assert len(store.keys("backup/p1/")) == 1
    assert len(content.attached) == 1
    target_id, artifact, alt = content.attached[0]
    assert target_id == "p1"
    assert artifact.variant == "viewport"
    assert alt == "Alpha screenshot"


def test_fresh_target_causes_no_mutation() -> None:
    store = FakeBlobStore()
    store.put("screenshots/p1/1_viewport.jpg", last_modified=hours_ago(2))
    content = FakeContent()
    renderer = FakeRenderer()
    scheduler = _scheduler(store, renderer, content)

    summary = asyncio.run(scheduler.process([make_target("p1")]))

    assert summary.skipped == 1
    assert [call[0] for call in store.calls] == ["list"]
    assert renderer.rendered == []
    assert content.attached == []


def test_target_without_url_is_skipped() -> None:
    store = FakeBlobStore()
    scheduler = _scheduler(store, FakeRenderer(), FakeContent())

    summary = asyncio.run(scheduler.process([Target(id="p1", urls=(), display_name="Empty")]))

    assert summary.skipped == 1
    assert store.calls == []


def test_failing_target_does_not_affect_siblings() -> None:
    store = FakeBlobStore()
    content = FakeContent()
    renderer = FakeRenderer()
    renderer.failures["https://p2.example.com"] = RenderFailure("https://p2.example.com", "crash")
    scheduler = _scheduler(store, renderer, content)
    targets = [make_target("p1"), make_target("p2"), make_target("p3")]

    summary = asyncio.run(scheduler.process(targets))

    assert summary.captured == 2
    assert summary.failed == 1
    assert sorted(target_id for target_id, _, _ in content.attached) == ["p1", "p3"]


def test_hung_target_times_out_without_blocking_batch() -> None:
    store = FakeBlobStore()
    content = FakeContent()
    renderer = FakeRenderer()
    renderer.hang.add("https://p2.example.com")
    settings = BatchSettings(batch_delay_seconds=0, target_timeout_seconds=0.2)
    scheduler = _scheduler(store, renderer, content, settings=settings)
    targets = [make_target("p1"), make_target("p2"), make_target("p3")]

    summary = asyncio.run(scheduler.process(targets))

    assert summary.timed_out == 1
    assert summary.captured == 2
    assert renderer.active == 0


def test_concurrency_is_bounded_by_batch_size() -> None:
    store = FakeBlobStore()
    renderer = FakeRenderer(delay=0.02)
    scheduler = _scheduler(store, renderer, FakeContent())
    targets = [make_target(f"p{i}") for i in range(7)]

    summary = asyncio.run(scheduler.process(targets))

    assert summary.captured == 7
    assert renderer.max_active <= 3


def test_delay_between_batches_but_not_after_last() -> None:
    store = FakeBlobStore()
    sleep = RecordingSleep()
    settings = BatchSettings(batch_delay_seconds=2.0)
    scheduler = _scheduler(store, FakeRenderer(), FakeContent(), settings=settings, sleep=sleep)
    targets = [make_target(f"p{i}") for i in range(7)]

    asyncio.run(scheduler.process(targets))

    assert sleep.delays == [2.0, 2.0]


def test_attach_failure_counts_as_failed() -> None:
    class BrokenContent(FakeContent):
        def attach_artifact(self, target_id, artifact, *, alt=None):
            raise RuntimeError("content API down")

    store = FakeBlobStore()
    scheduler = _scheduler(store, FakeRenderer(), BrokenContent())

    summary = asyncio.run(scheduler.process([make_target("p1")]))

    assert summary.failed == 1
    assert summary.captured == 0


class StuckTeardownRenderer(FakeRenderer):
    """Render that never finishes and whose cleanup stalls once cancelled."""

    def __init__(self, stuck_url, teardown_seconds=5.0):
        super().__init__()
        self.stuck_url = stuck_url
        self.teardown_seconds = teardown_seconds

    async def render(self, url):
        if url != self.stuck_url:
            return await super().render(url)
        try:
            await asyncio.sleep(3600)
        finally:
            await asyncio.sleep(self.teardown_seconds)


def test_target_dropped_on_time_when_teardown_stalls() -> None:
    store = FakeBlobStore()
    content = FakeContent()
    renderer = StuckTeardownRenderer("https://p2.example.com")
    settings = BatchSettings(batch_delay_seconds=0, target_timeout_seconds=0.2)
    scheduler = _scheduler(store, renderer, content, settings=settings)
    targets = [make_target("p1"), make_target("p2"), make_target("p3")]

    async def _scenario():
        started = time.monotonic()
        summary = await scheduler.process(targets)
        return summary, time.monotonic() - started

    summary, elapsed = asyncio.run(_scenario())

    assert elapsed < 2.0
    assert summary.timed_out == 1
    assert summary.captured == 2
    assert sorted(target_id for target_id, _, _ in content.attached) == ["p1", "p3"]
