"""Tests for the content HTTP API against the local backends."""

import json
from unittest.mock import patch

from pilgrim_cms.storage.local import LocalObjectStore


def _payload(**fields) -> dict:
    return {"payload": json.dumps({"name": "Mina", "description": ["Tent city"], **fields})}


def _create(client, area="uploads", category="demo", files=None, **fields):
    return client.post(f"/api/content/{area}/{category}", data=_payload(**fields), files=files or [])


IMAGE = ("images", ("a.JPG", b"jpeg-bytes", "image/jpeg"))
AUDIO = ("audios", ("b.mp3", b"mp3-bytes", "audio/mpeg"))


class TestAreas:

    def test_lists_every_area(self, client):
        resp = client.get("/api/areas")
        assert resp.status_code == 200
        keys = [a["key"] for a in resp.json()]
        assert keys == ["uploads", "historic_places", "live_updates", "travel_advisories", "upcoming_events"]

    def test_unknown_area_returns_404(self, client):
        resp = client.get("/api/content/gallery/demo")
        assert resp.status_code == 404
        assert resp.json()["error"] == "UNKNOWN_AREA"

    def test_unknown_category_returns_404(self, client):
        resp = client.get("/api/content/historic_places/hajj/next-id")
        assert resp.status_code == 404
        assert resp.json()["details"]["category"] == "hajj"


class TestCommit:

    def test_create_list_and_serve_files(self, client, storage_root):
        assert client.get("/api/content/uploads/demo/next-id").json()["folder_id"] == 1

        resp = _create(client, files=[IMAGE, AUDIO])
        assert resp.status_code == 201
        record = resp.json()
        assert record["folder_id"] == 1
        assert len(record["images"]) == 1
        assert len(record["audios"]) == 1
        assert record["images"][0].startswith("http://testserver/files/demo/1/image_")
        assert record["images"][0].endswith(".jpg")

        listed = client.get("/api/content/uploads/demo").json()
        assert [r["folder_id"] for r in listed] == [1]
        assert client.get("/api/content/uploads/demo/next-id").json()["folder_id"] == 2

        served = client.get(record["images"][0].replace("http://testserver", ""))
        assert served.status_code == 200
        assert served.content == b"jpeg-bytes"

    def test_cover_image(self, client):
        resp = _create(client, files=[("cover", ("Cover.PNG", b"png", "image/png"))])
        assert resp.status_code == 201
        assert "/demo/1/content_image_" in resp.json()["content_image"]
        assert resp.json()["content_image"].endswith(".png")

    def test_missing_name_is_rejected(self, client, storage_root):
        resp = client.post("/api/content/uploads/demo", data={"payload": json.dumps({"name": " "})})
        assert resp.status_code == 400
        assert resp.json()["error"] == "VALIDATION_ERROR"
        assert list(storage_root.iterdir()) == []

    def test_malformed_payload_is_rejected(self, client):
        resp = client.post("/api/content/uploads/demo", data={"payload": "{not json"})
        assert resp.status_code == 400

    def test_failed_upload_returns_502_and_writes_nothing(self, client, storage_root):
        real_upload = LocalObjectStore.upload

        def flaky(self, path, data, content_type=None, on_progress=None):
            if "/audio_" in path:
                raise OSError("disk full")
            return real_upload(self, path, data, content_type, on_progress)

        with patch.object(LocalObjectStore, "upload", autospec=True, side_effect=flaky):
            resp = _create(client, category="makkah", files=[IMAGE, AUDIO])

        assert resp.status_code == 502
        body = resp.json()
        assert body["error"] == "UPLOAD_FAILED"
        assert body["details"]["file"] == "b.mp3"
        assert client.get("/api/content/uploads/makkah").json() == []
        # The image that made it stays behind.
        assert len(list((storage_root / "makkah" / "1").iterdir())) == 1
        assert client.get("/api/content/uploads/makkah/next-id").json()["folder_id"] == 1

    def test_historic_places_keep_order_and_location(self, client):
        _create(client, area="historic_places", category="madina", order=2, location_link="https://maps.test/a")
        _create(client, area="historic_places", category="madina", order=1)
        listed = client.get("/api/content/historic_places/madina").json()
        assert [r["order"] for r in listed] == [1, 2]
        assert listed[1]["location_link"] == "https://maps.test/a"


class TestReadEditDelete:

    def test_get_and_missing(self, client):
        _create(client)
        assert client.get("/api/content/uploads/demo/1").json()["name"] == "Mina"
        resp = client.get("/api/content/uploads/demo/5")
        assert resp.status_code == 404
        assert resp.json()["error"] == "CONTENT_NOT_FOUND"

    def test_patch_appends_files(self, client):
        _create(client, files=[IMAGE])
        resp = client.patch(
            "/api/content/uploads/demo/1",
            data={"payload": json.dumps({"name": "Mina Valley"})},
            files=[("files", ("map.pdf", b"%PDF", "application/pdf"))],
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["name"] == "Mina Valley"
        assert body["description"] == ["Tent city"]
        assert len(body["images"]) == 1
        assert len(body["files"]) == 1
        assert body["updated_at"]

        files = client.get("/api/content/uploads/demo/1/files").json()
        assert files["source"] == "record"
        assert len(files["files"]) == 1

    def test_delete_removes_record_and_folder(self, client, storage_root):
        _create(client, files=[IMAGE, AUDIO])
        resp = client.delete("/api/content/uploads/demo/1")
        assert resp.status_code == 200
        assert resp.json() == {"folder_id": 1, "objects_deleted": 2, "storage_errors": 0}
        assert client.get("/api/content/uploads/demo/1").status_code == 404
        assert not (storage_root / "demo" / "1").exists()

    def test_delete_without_files_succeeds(self, client):
        _create(client)
        resp = client.delete("/api/content/uploads/demo/1")
        assert resp.status_code == 200
        assert resp.json()["objects_deleted"] == 0

    def test_remove_one_file(self, client, storage_root):
        created = _create(client, files=[IMAGE, AUDIO]).json()
        image = next(ref for ref in created["file_refs"] if ref["kind"] == "image")

        resp = client.delete("/api/content/uploads/demo/1/files", params={"path": image["path"]})

        assert resp.status_code == 200
        body = resp.json()
        assert body["object_deleted"] is True
        assert body["record"]["images"] == []
        assert len(body["record"]["audios"]) == 1
        assert not (storage_root / image["path"]).exists()
        assert client.get("/api/content/uploads/demo/1").json()["images"] == []

    def test_remove_unknown_file_returns_404(self, client):
        _create(client, files=[IMAGE])
        resp = client.delete("/api/content/uploads/demo/1/files", params={"path": "demo/1/nothing.pdf"})
        assert resp.status_code == 404
        assert resp.json()["error"] == "FILE_NOT_FOUND"


class TestAllocatorEndpoints:

    def test_reset_rereads_storage(self, client, storage_root):
        assert client.get("/api/content/uploads/hajj/next-id").json()["folder_id"] == 1
        (storage_root / "hajj" / "7").mkdir(parents=True)
        (storage_root / "hajj" / "7" / "image_1.jpg").write_bytes(b"x")
        assert client.get("/api/content/uploads/hajj/next-id").json()["folder_id"] == 1

        assert client.post("/api/content/uploads/hajj/next-id/reset").status_code == 204
        body = client.get("/api/content/uploads/hajj/next-id").json()
        assert body["folder_id"] == 8
        assert body["strategy"] == "listing"

    def test_pending_cleanup_with_nothing_pending(self, client):
        _create(client)
        resp = client.post("/api/content/uploads/demo/pending/cleanup?older_than_minutes=0")
        assert resp.status_code == 200
        assert resp.json() == {"removed": []}
