"""Tests for execution/patrasaar/blob_store.py"""

import pytest


class TestLocalBlobStore:

    def test_storage_path(self):
        from execution.patrasaar.blob_store import storage_path
        assert storage_path("user-1", "doc-1", ".PDF") == "user-1/doc-1.pdf"

    def test_put_get_delete(self, tmp_path):
        from execution.patrasaar.blob_store import LocalBlobStore
        store = LocalBlobStore(str(tmp_path))

        store.put("user-1/doc-1.txt", b"lease text")
        assert (tmp_path / "user-1" / "doc-1.txt").read_bytes() == b"lease text"
        assert store.get("user-1/doc-1.txt") == b"lease text"

        assert store.delete("user-1/doc-1.txt") is True
        assert store.delete("user-1/doc-1.txt") is False

    def test_missing_blob(self, tmp_path):
        from execution.patrasaar.blob_store import LocalBlobStore
        with pytest.raises(FileNotFoundError):
            LocalBlobStore(str(tmp_path)).get("user-1/missing.pdf")

    def test_path_escape_rejected(self, tmp_path):
        from execution.patrasaar.blob_store import LocalBlobStore
        store = LocalBlobStore(str(tmp_path / "blobs"))
        with pytest.raises(ValueError):
            store.put("../outside.txt", b"x")
