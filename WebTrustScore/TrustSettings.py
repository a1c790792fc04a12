import os
from dataclasses import dataclass
from typing import Mapping

DEFAULT_CACHE_MINUTES = 15
DEFAULT_DOMAIN_AGE_DAYS = 90
DEFAULT_HTTP_TIMEOUT = 6.0
DEFAULT_HTTP_RETRIES = 2


@dataclass(frozen=True)
class Settings:
    gsb_api_key: str = ""
    vt_api_key: str = ""
    skip_remote_reputation: bool = False
    profile: str = "balanced"
    cache_file: str = ""
    cache_minutes: float = DEFAULT_CACHE_MINUTES
    domain_age_days: int = DEFAULT_DOMAIN_AGE_DAYS
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    http_retries: int = DEFAULT_HTTP_RETRIES

    @property
    def cache_seconds(self) -> float:
        return self.cache_minutes * 60


def _first(environ: Mapping[str, str], *names: str) -> str:
    for name in names:
        value = (environ.get(name) or "").strip()
        if value:
            return value
    return ""


def _number(environ: Mapping[str, str], name: str, default, cast):
    raw = _first(environ, name)
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ
    return Settings(
        gsb_api_key=_first(env, "WEBTRUST_GSB_API_KEY", "GOOGLE_SAFE_BROWSING_API_KEY"),
        vt_api_key=_first(env, "WEBTRUST_VT_API_KEY", "VT_API_KEY"),
        skip_remote_reputation=_first(env, "WEBTRUST_SKIP_REMOTE_REPUTATION").lower() in {"1", "true", "yes"},
        profile=_first(env, "WEBTRUST_PROFILE") or "balanced",
        cache_file=_first(env, "WEBTRUST_CACHE_FILE"),
        cache_minutes=_number(env, "WEBTRUST_CACHE_MINUTES", DEFAULT_CACHE_MINUTES, float),
        domain_age_days=_number(env, "WEBTRUST_DOMAIN_AGE_DAYS", DEFAULT_DOMAIN_AGE_DAYS, int),
        http_timeout=_number(env, "WEBTRUST_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT, float),
        http_retries=_number(env, "WEBTRUST_HTTP_RETRIES", DEFAULT_HTTP_RETRIES, int),
    )
