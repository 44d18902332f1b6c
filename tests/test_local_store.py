"""Tests for the filesystem object store."""

import pytest

from pilgrim_cms.storage.local import LocalObjectStore


@pytest.fixture()
def store(tmp_path):
    return LocalObjectStore(tmp_path / "objects", "http://cdn.test/files/", chunk_size=4)


class TestLocalObjectStore:

    def test_upload_reports_chunked_progress(self, store):
        events = []
        stored = store.upload("demo/1/image_1.jpg", b"0123456789", "image/jpeg", lambda s, t: events.append((s, t)))
        assert events == [(0, 10), (4, 10), (8, 10), (10, 10)]
        assert stored.size == 10
        assert stored.url == "http://cdn.test/files/demo/1/image_1.jpg"
        assert store.download("demo/1/image_1.jpg") == b"0123456789"

    def test_list_returns_folders_and_items(self, store):
        store.upload("hajj/1/image_1.jpg", b"a")
        store.upload("hajj/2/audio_2.mp3", b"b")
        store.upload("hajj/readme.txt", b"c")
        listing = store.list("hajj")
        assert listing.prefixes == ["hajj/1", "hajj/2"]
        assert listing.items == ["hajj/readme.txt"]

    def test_missing_path_lists_empty(self, store):
        listing = store.list("nothing/here")
        assert listing.prefixes == []
        assert listing.items == []

    def test_temp_files_are_not_listed(self, store, tmp_path):
        folder = tmp_path / "objects" / "demo" / "1"
        folder.mkdir(parents=True)
        (folder / ".image_1.jpg.part-abc").write_bytes(b"partial")
        assert store.list("demo/1").items == []

    def test_delete_prunes_empty_folders(self, store, tmp_path):
        store.upload("umrah/3/file_1.pdf", b"x")
        store.delete("umrah/3/file_1.pdf")
        assert not (tmp_path / "objects" / "umrah").exists()
        assert (tmp_path / "objects").exists()

    def test_delete_missing_object_is_ignored(self, store):
        store.delete("umrah/9/gone.pdf")

    def test_download_missing_raises(self, store):
        with pytest.raises(FileNotFoundError):
            store.download("demo/1/missing.jpg")

    def test_rejects_traversal(self, store):
        with pytest.raises(ValueError):
            store.upload("../escape.txt", b"x")

    def test_url_is_quoted(self, store):
        assert store.get_download_url("demo/1/my file.jpg") == "http://cdn.test/files/demo/1/my%20file.jpg"
