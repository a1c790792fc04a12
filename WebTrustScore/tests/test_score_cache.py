import json

from ScoreCache import ScoreCache
from TrustScore import compute_score


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def sample_result():
    return compute_score({"ssl": True, "reputation": True, "domainAge": True}, 0, "https://example.com")


def test_fresh_entry_is_returned_until_window_ends():
    clock = FakeClock()
    cache = ScoreCache(clock=clock)
    cache.put("Example.com", sample_result())

    clock.now += 15 * 60 - 1
    entry = cache.get("example.com")
    assert entry["result"] == sample_result()
    assert entry["profile"] == "balanced"

    clock.now += 1
    assert cache.get("example.com") is None
    assert "example.com" not in cache.entries


def test_profile_mismatch_is_a_miss():
    cache = ScoreCache(clock=FakeClock())
    cache.put("example.com", sample_result(), profile="strict")

    assert cache.get("example.com", profile="safe") is None
    assert cache.get("example.com", profile="strict")["result"].score == 89


def test_entries_persist_to_json_file(tmp_path):
    path = tmp_path / "cache" / "scores.json"
    clock = FakeClock()
    ScoreCache(path, clock=clock).put("example.com", sample_result())

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["example.com"]["result"]["score"] == 89

    reloaded = ScoreCache(path, clock=clock)
    assert reloaded.get("example.com")["result"] == sample_result()


def test_corrupt_cache_file_behaves_as_empty(tmp_path):
    path = tmp_path / "scores.json"
    path.write_text("{not json", encoding="utf-8")

    cache = ScoreCache(path, clock=FakeClock())

    assert cache.entries == {}
    assert cache.get("example.com") is None


def test_malformed_entry_is_discarded():
    clock = FakeClock()
    cache = ScoreCache(clock=clock)
    cache.entries["example.com"] = {"result": {"breakdown": []}, "profile": "balanced", "timestamp": clock.now}

    assert cache.get("example.com") is None
    assert cache.entries == {}


def test_purge_expired_counts_removed_entries():
    clock = FakeClock()
    cache = ScoreCache(freshness_seconds=60, clock=clock)
    cache.put("old.example", sample_result())
    clock.now += 120
    cache.put("new.example", sample_result())

    assert cache.purge_expired() == 1
    assert list(cache.entries) == ["new.example"]
