"""Tests for the identifier cache."""

import json
import logging
from pathlib import Path

import pytest

from mongo_cloud.cache.store import CACHE_VERSION, IdentifierCache
from mongo_cloud.errors import CacheError


def _make_cache(tmp_path: Path) -> IdentifierCache:
    return IdentifierCache(tmp_path / "ids.cache")


CLUSTERS = [
    {"id": "c1", "name": "alpha", "project_id": "p1"},
    {"id": "c2", "name": "beta", "project_id": "p2"},
]


# --- indexing ---


class TestRecordIdentity:
    def test_forward_and_reverse(self, tmp_path):
        cache = _make_cache(tmp_path)
        cache.record_identity("cluster", CLUSTERS, "name")
        assert cache.get("cluster:id:name") == {"c1": "alpha", "c2": "beta"}
        assert cache.get("cluster:name:id") == {"alpha": "c1", "beta": "c2"}

    def test_single_record(self, tmp_path):
        cache = _make_cache(tmp_path)
        cache.record_identity("project", {"id": "p1", "name": "prod"}, "name")
        assert cache.resolve("project", "name", "prod") == "p1"

    def test_missing_field_raises(self, tmp_path):
        cache = _make_cache(tmp_path)
        with pytest.raises(CacheError, match="hostname"):
            cache.record_identity("proc", [{"id": "x"}], "hostname")

    def test_rejects_non_records(self, tmp_path):
        with pytest.raises(CacheError):
            _make_cache(tmp_path).record_identity("cluster", "alpha", "name")

    def test_renamed_entity_overwrites(self, tmp_path):
        cache = _make_cache(tmp_path)
        cache.record_identity("cluster", [{"id": "c1", "name": "alpha"}], "name")
        cache.record_identity("cluster", [{"id": "c1", "name": "gamma"}], "name")
        assert cache.lookup("cluster", "name", "c1") == "gamma"
        assert cache.resolve("cluster", "name", "gamma") == "c1"


class TestRecordAssociation:
    def test_parent_lookup(self, tmp_path):
        cache = _make_cache(tmp_path)
        cache.record_association("cluster", "project", CLUSTERS, "project_id")
        assert cache.get("cluster-project") == {"c1": "p1", "c2": "p2"}
        assert cache.parent("cluster", "project", "c2") == "p2"

    def test_unknown_child(self, tmp_path):
        assert _make_cache(tmp_path).parent("cluster", "project", "nope") is None

    def test_missing_foreign_key(self, tmp_path):
        with pytest.raises(CacheError, match="project_id"):
            _make_cache(tmp_path).record_association(
                "cluster", "project", [{"id": "c1"}], "project_id",
            )


# --- lookups ---


class TestLookups:
    def test_resolve_passes_unknown_keys_through(self, tmp_path):
        cache = _make_cache(tmp_path)
        cache.record_identity("cluster", CLUSTERS, "name")
        assert cache.resolve("cluster", "name", "alpha") == "c1"
        assert cache.resolve("cluster", "name", "5f1a0000") == "5f1a0000"

    def test_lookup_passes_unknown_ids_through(self, tmp_path):
        cache = _make_cache(tmp_path)
        cache.record_identity("cluster", CLUSTERS, "name")
        assert cache.lookup("cluster", "name", "c1") == "alpha"
        assert cache.lookup("cluster", "name", "alpha") == "alpha"

    def test_get_returns_copy(self, tmp_path):
        cache = _make_cache(tmp_path)
        cache.record_identity("cluster", CLUSTERS, "name")
        cache.get("cluster:id:name")["c9"] = "zzz"
        assert "c9" not in cache.get("cluster:id:name")

    def test_empty_cache(self, tmp_path):
        cache = _make_cache(tmp_path)
        assert cache.get("cluster:id:name") == {}
        assert cache.resolve("project", "name", "prod") == "prod"


# --- persistence ---


class TestPersistence:
    def test_survives_reopen(self, tmp_path):
        with _make_cache(tmp_path) as cache:
            cache.record_identity("cluster", CLUSTERS, "name")
            cache.record_association("cluster", "project", CLUSTERS, "project_id")

        reopened = _make_cache(tmp_path)
        assert reopened.resolve("cluster", "name", "beta") == "c2"
        assert reopened.parent("cluster", "project", "c1") == "p1"

    def test_file_format(self, tmp_path):
        cache = _make_cache(tmp_path)
        cache.record_identity("proc", [{"id": "h:27017", "hostname": "h"}], "hostname")
        cache.close()
        data = json.loads((tmp_path / "ids.cache").read_text(encoding="utf-8"))
        assert data["version"] == CACHE_VERSION
        assert data["entries"]["proc:hostname:id"] == {"h": "h:27017"}

    def test_no_write_when_clean(self, tmp_path):
        cache = _make_cache(tmp_path)
        cache.resolve("cluster", "name", "alpha")
        cache.close()
        assert not (tmp_path / "ids.cache").exists()

    def test_no_rewrite_when_unchanged(self, tmp_path):
        with _make_cache(tmp_path) as cache:
            cache.record_identity("cluster", CLUSTERS, "name")
        path = tmp_path / "ids.cache"
        path.write_text(path.read_text(encoding="utf-8") + "\n", encoding="utf-8")
        before = path.read_text(encoding="utf-8")

        with _make_cache(tmp_path) as cache:
            cache.record_identity("cluster", CLUSTERS, "name")
        assert path.read_text(encoding="utf-8") == before

    def test_no_tmp_file_left(self, tmp_path):
        with _make_cache(tmp_path) as cache:
            cache.record_identity("cluster", CLUSTERS, "name")
        assert sorted(p.name for p in tmp_path.iterdir()) == ["ids.cache"]

    def test_creates_parent_dirs(self, tmp_path):
        cache = IdentifierCache(tmp_path / "deep" / "dir" / "ids.cache")
        cache.record_identity("cluster", CLUSTERS, "name")
        cache.close()
        assert (tmp_path / "deep" / "dir" / "ids.cache").is_file()

    def test_expands_user(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        cache = IdentifierCache("~/.mongo-cloud.cache")
        assert cache.path == tmp_path / ".mongo-cloud.cache"


class TestDiscard:
    def test_other_version_discarded(self, tmp_path, caplog):
        path = tmp_path / "ids.cache"
        path.write_text(json.dumps({
            "version": CACHE_VERSION + 1,
            "entries": {"cluster:name:id": {"alpha": "c1"}},
        }), encoding="utf-8")
        caplog.set_level(logging.INFO, logger="mongo_cloud.cache.store")
        cache = IdentifierCache(path)
        assert cache.resolve("cluster", "name", "alpha") == "alpha"
        assert "another version" in caplog.text

    def test_unversioned_file_discarded(self, tmp_path):
        path = tmp_path / "ids.cache"
        path.write_text(json.dumps({"cluster:name:id": {"alpha": "c1"}}), encoding="utf-8")
        assert IdentifierCache(path).resolve("cluster", "name", "alpha") == "alpha"

    def test_corrupt_file_discarded(self, tmp_path, caplog):
        path = tmp_path / "ids.cache"
        path.write_text("{not json", encoding="utf-8")
        cache = IdentifierCache(path)
        assert cache.get("cluster:name:id") == {}
        assert "unreadable" in caplog.text

    def test_discarded_file_replaced_on_write(self, tmp_path):
        path = tmp_path / "ids.cache"
        path.write_text("garbage", encoding="utf-8")
        with IdentifierCache(path) as cache:
            cache.record_identity("cluster", CLUSTERS, "name")
        assert json.loads(path.read_text(encoding="utf-8"))["version"] == CACHE_VERSION
