"""Tests for the upload orchestrator and batch progress aggregation."""

import threading

import pytest

from pilgrim_cms.exceptions import UploadFailedError
from pilgrim_cms.schemas.content import FileKind
from pilgrim_cms.services.upload_orchestrator import ProgressTracker, UploadOrchestrator
from tests.fakes import InMemoryObjectStore, make_source

MILLIS = 1700000000000


class TestProgressTracker:

    def test_mean_of_fractions(self):
        tracker = ProgressTracker(2)
        tracker.update(0, 50, 100)
        tracker.succeed(1)
        assert tracker.percent == 75.0

    def test_never_decreases_on_out_of_order_events(self):
        seen = []
        tracker = ProgressTracker(2, seen.append)
        tracker.update(0, 80, 100)
        tracker.update(0, 30, 100)
        tracker.update(1, 10, 100)
        assert seen == sorted(seen)
        assert tracker.percent == pytest.approx(45.0)

    def test_all_bytes_sent_is_not_completion(self):
        tracker = ProgressTracker(2)
        tracker.update(0, 100, 100)
        tracker.update(1, 100, 100)
        assert tracker.percent < 100

    def test_reaches_100_only_when_every_task_succeeded(self):
        seen = []
        tracker = ProgressTracker(3, seen.append)
        tracker.succeed(0)
        tracker.succeed(1)
        assert 100.0 not in seen
        tracker.succeed(2)
        assert seen[-1] == 100.0
        assert seen.count(100.0) == 1

    def test_failed_task_keeps_aggregate_below_100(self):
        tracker = ProgressTracker(2)
        tracker.succeed(0)
        tracker.update(1, 40, 100)
        tracker.fail(1)
        assert tracker.percent == pytest.approx(70.0)

    def test_zero_byte_file(self):
        tracker = ProgressTracker(1)
        tracker.update(0, 0, 0)
        assert tracker.percent == 0.0
        tracker.succeed(0)
        assert tracker.percent == 100.0


class TestObjectNames:

    def test_cover_name_is_lowercase_with_millis(self):
        store = InMemoryObjectStore()
        uploaded = UploadOrchestrator(store).upload_cover("demo/1", make_source("Kaaba.PNG", "image/png"), MILLIS)
        assert uploaded.path == f"demo/1/content_image_{MILLIS}.png"
        assert uploaded.kind == FileKind.IMAGE
        assert uploaded.url.endswith(uploaded.path)

    def test_batch_names_use_kind_and_index(self):
        store = InMemoryObjectStore()
        files = UploadOrchestrator(store).upload_batch("hajj/3", [
            make_source("a.JPG", "image/jpeg"),
            make_source("talk.MP3", "audio/mpeg"),
            make_source("guide.pdf", "application/pdf"),
        ], MILLIS)
        assert [f.path for f in files] == [
            f"hajj/3/image_{MILLIS}.jpg",
            f"hajj/3/audio_{MILLIS + 1}.mp3",
            f"hajj/3/file_{MILLIS + 2}.pdf",
        ]

    def test_declared_kind_wins_over_content_type(self):
        store = InMemoryObjectStore()
        files = UploadOrchestrator(store).upload_batch(
            "demo/1", [make_source("scan.png", "image/png", kind=FileKind.FILE)], MILLIS
        )
        assert files[0].kind == FileKind.FILE
        assert files[0].path == f"demo/1/file_{MILLIS}.png"

    def test_empty_batch(self):
        assert UploadOrchestrator(InMemoryObjectStore()).upload_batch("demo/1", [], MILLIS) == []


class TestBatchUpload:

    def test_progress_reads_75_with_image_half_done_and_audio_finished(self):
        store = InMemoryObjectStore()
        release = threading.Event()
        reached_75 = threading.Event()
        seen = []

        def pause_image(path, on_progress, total):
            on_progress(total // 2, total)
            release.wait(timeout=5)

        def listener(percent):
            seen.append(percent)
            if percent == 75.0:
                reached_75.set()

        store.hooks["/image_"] = pause_image
        orchestrator = UploadOrchestrator(store, max_workers=2)
        result = {}
        worker = threading.Thread(target=lambda: result.update(files=orchestrator.upload_batch(
            "demo/1",
            [make_source("a.jpg", "image/jpeg"), make_source("b.mp3", "audio/mpeg")],
            MILLIS,
            on_progress=listener,
        )))
        worker.start()
        try:
            assert reached_75.wait(timeout=5)
            assert 100.0 not in seen
        finally:
            release.set()
            worker.join(timeout=5)

        assert seen == sorted(seen)
        assert seen[-1] == 100.0
        assert len(result["files"]) == 2

    def test_failure_is_reported_after_siblings_finish(self):
        store = InMemoryObjectStore()
        store.fail_uploads["/audio_"] = IOError("connection reset")
        orchestrator = UploadOrchestrator(store, max_workers=2)

        with pytest.raises(UploadFailedError) as exc_info:
            orchestrator.upload_batch(
                "makkah/3",
                [make_source("a.jpg", "image/jpeg"), make_source("b.mp3", "audio/mpeg")],
                MILLIS,
            )

        err = exc_info.value
        assert err.file == "b.mp3"
        assert err.path == f"makkah/3/audio_{MILLIS + 1}.mp3"
        assert err.details["index"] == 1
        assert err.details["uploaded"] == [f"makkah/3/image_{MILLIS}.jpg"]
        assert len(err.details["failures"]) == 1
        # No rollback of the sibling that made it.
        assert f"makkah/3/image_{MILLIS}.jpg" in store.objects

    def test_every_failure_is_listed(self):
        store = InMemoryObjectStore()
        store.fail_uploads["/file_"] = IOError("quota exceeded")
        with pytest.raises(UploadFailedError) as exc_info:
            UploadOrchestrator(store).upload_batch(
                "demo/2",
                [
                    make_source("x.pdf", "application/pdf"),
                    make_source("a.jpg", "image/jpeg"),
                    make_source("y.pdf", "application/pdf"),
                ],
                MILLIS,
            )
        failures = exc_info.value.details["failures"]
        assert [f["index"] for f in failures] == [0, 2]
        assert exc_info.value.file == "x.pdf"

    def test_cover_failure(self):
        store = InMemoryObjectStore()
        store.fail_uploads["content_image_"] = IOError("denied")
        with pytest.raises(UploadFailedError) as exc_info:
            UploadOrchestrator(store).upload_cover("demo/1", make_source("c.jpg"), MILLIS)
        assert exc_info.value.path == f"demo/1/content_image_{MILLIS}.jpg"
