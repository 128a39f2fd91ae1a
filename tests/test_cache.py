import json

from ansiblesec.cache import CACHE_FILENAME, FileScanCache, ScanCache
from ansiblesec.hashing import hash_bytes, hash_file
from ansiblesec.result import Finding
from ansiblesec.severity import Severity

FINDING = Finding(
    file_path="site.yml",
    line=3,
    column=7,
    severity=Severity.HIGH,
    rule_id="POLICY_001",
    message="Use of disallowed module 'shell'",
)


def test_lookup_requires_exact_hash():
    cache = ScanCache()
    cache.store("site.yml", "abc", [FINDING])

    assert cache.lookup("site.yml", "abc") == (FINDING,)
    assert cache.lookup("site.yml", "abd") is None
    assert cache.lookup("other.yml", "abc") is None
    assert (cache.stats.hits, cache.stats.misses, cache.stats.stores) == (1, 2, 1)


def test_store_replaces_previous_entry():
    cache = ScanCache()
    cache.store("site.yml", "old", [FINDING])
    cache.store("site.yml", "new", [])

    assert len(cache) == 1
    assert cache.lookup("site.yml", "old") is None
    assert cache.lookup("site.yml", "new") == ()


def test_persist_and_load_round_trip(tmp_path):
    cache = FileScanCache(tmp_path / "cache", fingerprint="rules-v1")
    cache.store("site.yml", "abc", [FINDING])
    cache.persist()

    reloaded = FileScanCache(tmp_path / "cache", fingerprint="rules-v1")
    reloaded.load()

    assert reloaded.lookup("site.yml", "abc") == (FINDING,)
    assert not list((tmp_path / "cache").glob("*.tmp"))


def test_fingerprint_change_discards_store(tmp_path):
    cache = FileScanCache(tmp_path, fingerprint="rules-v1")
    cache.store("site.yml", "abc", [FINDING])
    cache.persist()

    changed = FileScanCache(tmp_path, fingerprint="rules-v2")
    changed.load()

    assert len(changed) == 0


def test_corrupt_store_loads_empty(tmp_path):
    (tmp_path / CACHE_FILENAME).write_text("{not json", encoding="utf-8")
    cache = FileScanCache(tmp_path)

    cache.load()

    assert len(cache) == 0
    assert cache.lookup("site.yml", "abc") is None


def test_malformed_records_are_dropped_individually(tmp_path):
    good = {"content_hash": "abc", "timestamp": 1.0, "findings": [FINDING.to_dict()]}
    payload = {
        "version": 1,
        "fingerprint": "",
        "entries": {
            "good.yml": good,
            "no-hash.yml": {"findings": []},
            "bad-finding.yml": {"content_hash": "abc", "findings": [{"line": "x"}]},
            "not-a-record.yml": "oops",
        },
    }
    (tmp_path / CACHE_FILENAME).write_text(json.dumps(payload), encoding="utf-8")
    cache = FileScanCache(tmp_path)

    cache.load()

    assert len(cache) == 1
    assert cache.lookup("good.yml", "abc") == (FINDING,)


def test_persist_failure_is_not_fatal(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", encoding="utf-8")
    cache = FileScanCache(blocker / "cache")
    cache.store("site.yml", "abc", [FINDING])

    cache.persist()

    assert cache.lookup("site.yml", "abc") == (FINDING,)


def test_clear_removes_store(tmp_path):
    cache = FileScanCache(tmp_path)
    cache.store("site.yml", "abc", [FINDING])
    cache.persist()

    cache.clear()

    assert len(cache) == 0
    assert not (tmp_path / CACHE_FILENAME).exists()


def test_hash_is_sensitive_to_single_byte_change(tmp_path):
    path = tmp_path / "a.yml"
    path.write_bytes(b"key: value\n")
    before = hash_file(path)
    path.write_bytes(b"key: valuf\n")

    assert hash_file(path) != before
    assert hash_file(path) == hash_bytes(b"key: valuf\n")


def test_retain_drops_entries_for_other_paths():
    cache = ScanCache()
    cache.store("site.yml", "abc", [FINDING])
    cache.store("old.yml", "def", [])

    assert cache.retain(["site.yml", "new.yml"]) == 1
    assert len(cache) == 1
    assert cache.lookup("site.yml", "abc") == (FINDING,)
    assert cache.lookup("old.yml", "def") is None
