"""Tests for the paste store and paste endpoints."""

import json
import re
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from pastebox.exceptions import PasteNotFound, PersistenceFailure
from pastebox.services import paste_store as paste_store_module
from pastebox.services.paste_store import PasteStore, format_timestamp


def fixed_clock():
    return datetime(2024, 5, 1, 12, 30, 45, 123456, tzinfo=timezone.utc)


class TestPasteStore:
    """Tests for storage, reload and compaction."""

    def test_create_and_get(self, paste_store: PasteStore):
        """A created paste can be read back by id."""
        paste = paste_store.create("hello")
        assert paste_store.get(paste.id).content == "hello"
        assert len(paste_store) == 1

    def test_created_at_has_millisecond_precision(self, tmp_path):
        store = PasteStore(tmp_path / "pastes.json", clock=fixed_clock)
        store.load()
        paste = store.create("x")
        assert paste.created_at.microsecond == 123000
        assert format_timestamp(paste.created_at) == "2024-05-01T12:30:45.123Z"

    def test_missing_paste(self, paste_store: PasteStore):
        with pytest.raises(PasteNotFound):
            paste_store.get("0123456789abcdef")

    def test_survives_reload(self, tmp_path):
        """Pastes written by one instance are read by the next."""
        path = tmp_path / "pastes.json"
        first = PasteStore(path, clock=fixed_clock)
        first.load()
        a = first.create("one")
        b = first.create("two")

        second = PasteStore(path)
        assert second.load() == 2
        assert second.get(a.id) == a
        assert second.get(b.id) == b

    def test_content_stored_verbatim(self, tmp_path):
        """Whitespace, unicode and markup are kept as-is."""
        path = tmp_path / "pastes.json"
        store = PasteStore(path)
        store.load()
        content = "  line one\n\tline two\n<b>ünïcødé</b> ☃\n"
        paste = store.create(content)

        reloaded = PasteStore(path)
        reloaded.load()
        assert reloaded.get(paste.id).content == content

    def test_empty_content_allowed(self, paste_store: PasteStore):
        paste = paste_store.create("")
        assert paste_store.get(paste.id).content == ""

    def test_reads_existing_snapshot(self, tmp_path):
        """A plain JSON array of records loads as-is."""
        path = tmp_path / "pastes.json"
        path.write_text(
            json.dumps(
                [
                    {"id": "a1b2c3d4e5f60718", "content": "first", "createdAt": "2024-01-01T00:00:00.000Z"},
                    {"id": "0011223344556677", "content": "second", "createdAt": "2024-01-02T08:15:00.250Z"},
                ]
            )
        )
        store = PasteStore(path)
        assert store.load() == 2
        first = store.get("a1b2c3d4e5f60718")
        assert first.content == "first"
        assert first.created_at == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert store.get("0011223344556677").created_at.microsecond == 250000

    def test_reads_records_without_string_content(self, tmp_path):
        """Older files may hold pastes saved with no body or a non-string one."""
        path = tmp_path / "pastes.json"
        path.write_text(
            json.dumps(
                [
                    {"id": "1111111111111111", "createdAt": "2024-01-01T00:00:00.000Z"},
                    {"id": "2222222222222222", "content": 123, "createdAt": "2024-01-01T00:00:00.000Z"},
                    {"id": "3333333333333333", "content": None, "createdAt": "2024-01-01T00:00:00.000Z"},
                ]
            )
        )
        store = PasteStore(path)
        assert store.load() == 3
        assert store.get("1111111111111111").content == ""
        assert store.get("2222222222222222").content == "123"
        assert store.get("3333333333333333").content == ""

    def test_missing_files_start_empty(self, tmp_path):
        store = PasteStore(tmp_path / "nested" / "pastes.json")
        assert store.load() == 0
        assert store.state == "ready"

    def test_load_folds_log_into_snapshot(self, tmp_path):
        path = tmp_path / "pastes.json"
        store = PasteStore(path)
        store.load()
        paste = store.create("logged")
        assert store.log_path.read_bytes() != b""

        PasteStore(path).load()
        assert store.log_path.read_bytes() == b""
        records = json.loads(path.read_text())
        assert [r["id"] for r in records] == [paste.id]

    def test_torn_final_record_is_dropped(self, tmp_path, caplog):
        """A partial last line from an interrupted write is discarded with a warning."""
        path = tmp_path / "pastes.json"
        store = PasteStore(path)
        store.load()
        kept = store.create("kept")
        with open(store.log_path, "ab") as f:
            f.write(b'{"id": "deadbeefdeadbeef", "cont')

        reloaded = PasteStore(path)
        assert reloaded.load() == 1
        assert reloaded.get(kept.id).content == "kept"
        assert "incomplete final record" in caplog.text

    def test_corrupt_log_line_fails_load(self, tmp_path):
        """A damaged complete record stops the load instead of silently losing data."""
        path = tmp_path / "pastes.json"
        store = PasteStore(path)
        store.load()
        store.create("good")
        with open(store.log_path, "ab") as f:
            f.write(b"not json\n")
        store.create("also good")

        reloaded = PasteStore(path)
        with pytest.raises(PersistenceFailure):
            reloaded.load()
        assert reloaded.state == "loading"

    def test_corrupt_snapshot_fails_load(self, tmp_path):
        path = tmp_path / "pastes.json"
        path.write_text("{not an array")
        with pytest.raises(PersistenceFailure):
            PasteStore(path).load()

    def test_snapshot_of_wrong_shape_fails_load(self, tmp_path):
        path = tmp_path / "pastes.json"
        path.write_text(json.dumps({"id": "x", "content": "y"}))
        with pytest.raises(PersistenceFailure):
            PasteStore(path).load()

    def test_compacts_at_threshold(self, tmp_path):
        """Reaching the log threshold rewrites the snapshot and empties the log."""
        path = tmp_path / "pastes.json"
        store = PasteStore(path, compact_threshold=2)
        store.load()
        store.create("one")
        assert not path.exists()
        store.create("two")

        assert store.log_path.read_bytes() == b""
        assert len(json.loads(path.read_text())) == 2

    def test_explicit_compact(self, tmp_path):
        """compact() folds the log into the snapshot on demand."""
        path = tmp_path / "pastes.json"
        store = PasteStore(path, compact_threshold=0)
        store.load()
        a = store.create("one")
        b = store.create("two")
        assert not path.exists()

        store.compact()
        assert store.log_path.read_bytes() == b""
        assert [r["id"] for r in json.loads(path.read_text())] == [a.id, b.id]

        reloaded = PasteStore(path)
        assert reloaded.load() == 2
        assert reloaded.get(b.id).content == "two"

    def test_failed_write_is_not_stored(self, paste_store: PasteStore, monkeypatch):
        """A paste whose write fails is reported and never becomes visible."""

        def broken_append(paste):
            raise OSError("disk full")

        monkeypatch.setattr(paste_store, "_append", broken_append)
        with pytest.raises(PersistenceFailure):
            paste_store.create("lost")
        assert len(paste_store) == 0

    def test_id_collision_is_retried(self, paste_store: PasteStore, monkeypatch):
        """A freshly drawn id that is already taken is replaced."""
        ids = iter(["aaaaaaaaaaaaaaaa", "aaaaaaaaaaaaaaaa", "bbbbbbbbbbbbbbbb"])
        monkeypatch.setattr(paste_store_module, "new_record_id", lambda: next(ids))

        first = paste_store.create("one")
        second = paste_store.create("two")
        assert first.id == "aaaaaaaaaaaaaaaa"
        assert second.id == "bbbbbbbbbbbbbbbb"
        assert paste_store.get(first.id).content == "one"

    def test_id_allocation_gives_up(self, paste_store: PasteStore, monkeypatch):
        monkeypatch.setattr(paste_store_module, "new_record_id", lambda: "aaaaaaaaaaaaaaaa")
        paste_store.create("one")
        with pytest.raises(PersistenceFailure):
            paste_store.create("two")


class TestPasteEndpoints:
    """Tests for the paste HTTP surface."""

    def test_create_paste(self, client: TestClient, paste_store: PasteStore):
        response = client.post("/api/createPaste", json={"paste": "hello world"})
        assert response.status_code == 200
        paste_id = response.json()["id"]
        assert len(paste_id) == 16
        assert paste_store.get(paste_id).content == "hello world"

    def test_create_paste_requires_body(self, client: TestClient):
        response = client.post("/api/createPaste", json={})
        assert response.status_code == 422

    def test_get_paste_json(self, client: TestClient):
        paste_id = client.post("/api/createPaste", json={"paste": "abc"}).json()["id"]
        response = client.get(f"/api/pastes/{paste_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == paste_id
        assert data["content"] == "abc"
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z", data["createdAt"])

    def test_get_paste_json_missing(self, client: TestClient):
        response = client.get("/api/pastes/0000000000000000")
        assert response.status_code == 404
        assert response.json()["detail"] == "Paste not found."

    def test_paste_page(self, client: TestClient):
        paste_id = client.post("/api/createPaste", json={"paste": "plain text"}).json()["id"]
        response = client.get(f"/p/{paste_id}")
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "plain text" in response.text
        assert f"http://testserver/p/{paste_id}" in response.text

    def test_paste_page_escapes_content(self, client: TestClient):
        """Paste content is shown as text, never interpreted as markup."""
        paste_id = client.post("/api/createPaste", json={"paste": "<script>alert(1)</script>"}).json()["id"]
        response = client.get(f"/p/{paste_id}")
        assert response.status_code == 200
        assert "<script>alert(1)</script>" not in response.text
        assert "&lt;script&gt;alert(1)&lt;/script&gt;" in response.text

    def test_paste_page_missing(self, client: TestClient):
        response = client.get("/p/0000000000000000")
        assert response.status_code == 404
        assert "text/html" in response.headers["content-type"]
        assert "Paste not found." in response.text

    def test_create_paste_write_failure(self, client: TestClient, paste_store: PasteStore, monkeypatch):
        """A paste that cannot be persisted is a server error, not a dangling id."""

        def broken_append(paste):
            raise OSError("disk full")

        monkeypatch.setattr(paste_store, "_append", broken_append)
        response = client.post("/api/createPaste", json={"paste": "lost"})
        assert response.status_code == 500
        assert response.json()["detail"] == "Error saving paste."
        assert len(paste_store) == 0
