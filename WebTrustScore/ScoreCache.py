import json
import logging
import time
from pathlib import Path
from typing import Callable, Dict

from TrustScore import ScoreResult

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS_SECONDS = 15 * 60


class ScoreCache:
    """Hostname-keyed store of score results with a fixed freshness window.

    Entries older than the window are treated as absent. When ``path`` is set
    the entries are mirrored to a JSON file; storage failures are logged and
    behave like a cache miss.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        freshness_seconds: float = DEFAULT_FRESHNESS_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(path) if path else None
        self.freshness_seconds = freshness_seconds
        self.clock = clock
        self.entries: Dict[str, Dict] = self._load()

    @staticmethod
    def _key(hostname: str) -> str:
        return (hostname or "").strip().lower()

    def _load(self) -> Dict[str, Dict]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as file:
                data = json.load(file)
        except (OSError, ValueError) as error:
            logger.warning("Score cache read error for %s: %s", self.path, error)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self):
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as file:
                json.dump(self.entries, file, indent=2)
        except (OSError, TypeError) as error:
            logger.warning("Score cache write error for %s: %s", self.path, error)

    def is_fresh(self, entry: Dict) -> bool:
        try:
            age = self.clock() - float(entry["timestamp"])
        except (KeyError, TypeError, ValueError):
            return False
        return 0 <= age < self.freshness_seconds

    def get(self, hostname: str, profile: str | None = None) -> Dict | None:
        key = self._key(hostname)
        entry = self.entries.get(key)
        if not entry:
            return None
        if not self.is_fresh(entry):
            logger.debug("Score cache expired for %s", key)
            del self.entries[key]
            self._save()
            return None
        if profile is not None and entry.get("profile") != profile:
            return None
        try:
            result = ScoreResult.from_dict(entry["result"])
        except (KeyError, TypeError, ValueError) as error:
            logger.warning("Discarding malformed score cache entry for %s: %s", key, error)
            del self.entries[key]
            self._save()
            return None
        return {"result": result, "profile": entry.get("profile"), "timestamp": entry["timestamp"]}

    def put(self, hostname: str, result: ScoreResult, profile: str = "balanced"):
        key = self._key(hostname)
        if not key:
            return
        self.entries[key] = {
            "result": result.to_dict(),
            "profile": profile,
            "timestamp": self.clock(),
        }
        self._save()
        logger.debug("Cached score for %s", key)

    def purge_expired(self) -> int:
        stale = [key for key, entry in self.entries.items() if not self.is_fresh(entry)]
        for key in stale:
            del self.entries[key]
        if stale:
            self._save()
            logger.info("Cleared %d expired score cache entries", len(stale))
        return len(stale)
