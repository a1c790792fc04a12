"""Explainable website trust scoring.

The engine is a pure function of four inputs: locally observed factors, an
external domain reputation, the URL text and a weight profile. Inputs are
normalized once, an ordered list of rules turns them into signed deltas around
a neutral baseline, and a confidence value is derived from the breakdown.
"""
import math
import sys
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Tuple
from urllib.parse import parse_qsl, urlsplit

BASELINE_SCORE = 55
SCORE_FLOOR = 0
SCORE_CEILING = 100

SUSPICIOUS_URL_TOKENS = (
    "phish",
    "phishing",
    "malware",
    "verify",
    "login",
    "account",
    "free",
    "gift",
    "temp-mail",
    "urgent",
    "click",
    "confirm",
    "update",
    "secure",
)

SSL_PRESENT_DELTA = 20
SSL_MISSING_DELTA = -12
REPUTATION_GOOD_DELTA = 8
REPUTATION_POOR_DELTA = -6
DOMAIN_AGE_DELTA = 6
BLOCKLIST_DELTA = -40
URL_PATTERN_PENALTY = 12
URL_PATTERN_CAP = 36
URL_PARAMS_THRESHOLD = 4
URL_PARAMS_DELTA = -6
URL_QUERY_LENGTH_LIMIT = 150
URL_QUERY_LENGTH_DELTA = -8
DOMAIN_MALWARE_DELTA = -60
DOMAIN_PHISHING_DELTA = -60
DOMAIN_PENALTY_CAP = 40

STRONG_SIGNAL_THRESHOLD = 12
CONFIDENCE_BASE = 50
CONFIDENCE_STRONG_STEP = 15
CONFIDENCE_MODERATE_STEP = 6
CONFIDENCE_THREAT_PENALTY = 10

WEIGHT_PROFILES: Dict[str, Dict[str, float]] = {
    "safe": {
        "ssl": 1.0,
        "reputation": 0.6,
        "domain_penalty_multiplier": 0.6,
        "url_pattern_multiplier": 0.6,
    },
    "balanced": {
        "ssl": 1.0,
        "reputation": 1.0,
        "domain_penalty_multiplier": 1.0,
        "url_pattern_multiplier": 1.0,
    },
    "strict": {
        "ssl": 0.85,
        "reputation": 0.5,
        "domain_penalty_multiplier": 2.0,
        "url_pattern_multiplier": 1.8,
    },
}

WEIGHT_PROFILE_LABELS = {
    "safe": "Safe",
    "balanced": "Balanced",
    "strict": "Strict",
}

WEIGHT_PROFILE_METADATA: Dict[str, Dict[str, str]] = {
    "safe": {
        "focus": "Fewer false positives on signal-poor sites",
        "best_for": "Everyday browsing",
        "description": "Discounts reputation, URL and domain penalties to about 0.6x.",
    },
    "balanced": {
        "focus": "Every rule at its reference magnitude",
        "best_for": "Default scoring",
        "description": "All multipliers are 1.0.",
    },
    "strict": {
        "focus": "Domain reputation and suspicious URL structure",
        "best_for": "Phishing triage and untrusted links",
        "description": "Roughly doubles domain and URL penalties and halves reputation credit.",
    },
}

PROFILE_ALIASES = {
    "lenient": "safe",
    "permissive": "safe",
    "neutral": "balanced",
    "conservative": "strict",
}

DEFAULT_PROFILE = "balanced"

_WEIGHT_KEY_ALIASES = {
    "domainAge": "domain_age",
    "domainPenaltyMultiplier": "domain_penalty_multiplier",
    "urlPatternMultiplier": "url_pattern_multiplier",
}


def js_round(value: float) -> int:
    # half-up, so -4.5 -> -4 and 10.5 -> 11
    if isinstance(value, int):
        return value
    if math.isnan(value):
        return 0
    if math.isinf(value):
        # saturate so overflowing weights still hit the caps
        return sys.maxsize if value > 0 else -sys.maxsize
    return int(math.floor(value + 0.5))


def clamp_score(value: float) -> int:
    return max(SCORE_FLOOR, min(SCORE_CEILING, js_round(value)))


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _field(value, *names, default=None):
    if value is None:
        return default
    if isinstance(value, Mapping):
        for name in names:
            if name in value:
                return value[name]
        return default
    for name in names:
        if hasattr(value, name):
            return getattr(value, name)
    return default


# ─── Data model ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FactorSet:
    ssl: bool = False
    reputation: bool | float = False
    domain_age: bool = False
    blocklist: bool = False

    @classmethod
    def from_value(cls, value) -> "FactorSet":
        if isinstance(value, cls):
            return value
        return cls(
            ssl=bool(_field(value, "ssl", default=False)),
            reputation=_field(value, "reputation", default=False),
            domain_age=bool(_field(value, "domain_age", "domainAge", default=False)),
            blocklist=bool(_field(value, "blocklist", default=False)),
        )


@dataclass(frozen=True)
class DomainReputation:
    penalties: float = 0.0
    malware: bool = False
    phishing: bool = False

    @classmethod
    def from_value(cls, value) -> "DomainReputation":
        """Accept an instance, a mapping, None, or a bare penalty number."""
        if _is_number(value):
            return cls(penalties=_sanitize_penalties(value))
        if value is None or isinstance(value, (bool, str)):
            return cls()
        return cls(
            penalties=_sanitize_penalties(_field(value, "penalties", default=0)),
            malware=bool(_field(value, "malware", default=False)),
            phishing=bool(_field(value, "phishing", default=False)),
        )

    def to_dict(self) -> Dict:
        return {"penalties": self.penalties, "malware": self.malware, "phishing": self.phishing}


def _sanitize_penalties(value) -> float:
    try:
        penalties = float(value)
    except OverflowError:
        return sys.float_info.max if value > 0 else 0.0
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(penalties) or penalties <= 0:
        return 0.0
    if math.isinf(penalties):
        return sys.float_info.max
    return penalties


@dataclass(frozen=True)
class ReputationFlag:
    value: bool


@dataclass(frozen=True)
class ReputationScore:
    value: float


Reputation = ReputationFlag | ReputationScore


def resolve_reputation(value) -> Reputation:
    if _is_number(value):
        try:
            number = float(value)
        except OverflowError:
            return ReputationScore(1.0 if value > 0 else 0.0)
        if not math.isfinite(number):
            return ReputationFlag(False)
        return ReputationScore(max(0.0, min(1.0, number)))
    return ReputationFlag(bool(value))


@dataclass(frozen=True)
class WeightProfile:
    ssl: float = 1.0
    reputation: float = 1.0
    domain_age: float = 1.0
    blocklist: float = 1.0
    domain_penalty_multiplier: float = 1.0
    url_pattern_multiplier: float = 1.0

    @classmethod
    def from_value(cls, value) -> "WeightProfile":
        if isinstance(value, cls):
            return value
        if value is None:
            return cls()
        if isinstance(value, str):
            return get_weight_profile(value)
        entries = {}
        for name in cls.__dataclass_fields__:
            camel = next((alias for alias, target in _WEIGHT_KEY_ALIASES.items() if target == name), name)
            entries[name] = _sanitize_multiplier(_field(value, name, camel, default=1.0))
        return cls(**entries)

    def to_dict(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


def _sanitize_multiplier(value) -> float:
    if not _is_number(value):
        return 1.0
    try:
        number = float(value)
    except OverflowError:
        return sys.float_info.max if value > 0 else 0.0
    if not math.isfinite(number):
        return 1.0
    return max(0.0, number)


@dataclass(frozen=True)
class Signal:
    key: str
    delta: int
    note: str

    def to_dict(self) -> Dict:
        return {"key": self.key, "delta": self.delta, "note": self.note}


@dataclass(frozen=True)
class ScoreResult:
    score: int
    raw_score: int
    breakdown: Tuple[Signal, ...] = field(default_factory=tuple)
    confidence: int = CONFIDENCE_BASE

    def signal(self, key: str) -> Signal | None:
        return next((item for item in self.breakdown if item.key == key), None)

    def to_dict(self) -> Dict:
        return {
            "score": self.score,
            "rawScore": self.raw_score,
            "breakdown": [item.to_dict() for item in self.breakdown],
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "ScoreResult":
        return cls(
            score=int(data["score"]),
            raw_score=int(data.get("rawScore", data.get("raw_score", data["score"]))),
            breakdown=tuple(
                Signal(str(item["key"]), int(item["delta"]), str(item.get("note", "")))
                for item in data.get("breakdown", [])
            ),
            confidence=int(data.get("confidence", CONFIDENCE_BASE)),
        )


# ─── Weight profiles ─────────────────────────────────────────────────────────

def resolve_profile_name(name: str | None) -> str:
    key = (name or "").strip().lower()
    key = PROFILE_ALIASES.get(key, key)
    return key if key in WEIGHT_PROFILES else DEFAULT_PROFILE


def get_weight_profile(name: str | None) -> WeightProfile:
    return WeightProfile.from_value(WEIGHT_PROFILES[resolve_profile_name(name)])


# ─── Signal normalizer ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class UrlParts:
    hostname: str
    path_and_query: str
    parsed: bool
    query: str = ""
    param_keys: Tuple[str, ...] = ()


@dataclass(frozen=True)
class NormalizedSignals:
    ssl: bool
    reputation: Reputation
    domain_age: bool
    blocklist: bool
    domain_reputation: DomainReputation
    url: UrlParts
    weights: WeightProfile


def parse_url_parts(url) -> UrlParts:
    raw = "" if url is None else str(url)
    lowered = raw.lower()
    try:
        parts = urlsplit(raw.strip())
        hostname = parts.hostname or ""
    except ValueError:
        return UrlParts(hostname=lowered, path_and_query=lowered, parsed=False)
    if not parts.scheme or not parts.netloc:
        return UrlParts(hostname=lowered, path_and_query=lowered, parsed=False)

    search = f"?{parts.query}" if parts.query else ""
    keys = dict.fromkeys(key for key, _ in parse_qsl(parts.query, keep_blank_values=True))
    return UrlParts(
        hostname=hostname.lower(),
        path_and_query=f"{parts.path}{search}".lower(),
        parsed=True,
        query=search,
        param_keys=tuple(keys),
    )


def normalize_signals(factors=None, domain_reputation=0, url: str = "", weights=None) -> NormalizedSignals:
    factor_set = FactorSet.from_value(factors)
    return NormalizedSignals(
        ssl=factor_set.ssl,
        reputation=resolve_reputation(factor_set.reputation),
        domain_age=factor_set.domain_age,
        blocklist=factor_set.blocklist,
        domain_reputation=DomainReputation.from_value(domain_reputation),
        url=parse_url_parts(url),
        weights=WeightProfile.from_value(weights),
    )


# ─── Weighted aggregator ─────────────────────────────────────────────────────

def _score_ssl(signals: NormalizedSignals) -> Signal | None:
    if signals.ssl:
        return Signal("ssl", js_round(SSL_PRESENT_DELTA * signals.weights.ssl), "HTTPS present")
    return Signal("ssl", js_round(SSL_MISSING_DELTA * signals.weights.ssl), "No HTTPS")


def _score_reputation(signals: NormalizedSignals) -> Signal | None:
    weight = signals.weights.reputation
    reputation = signals.reputation
    if isinstance(reputation, ReputationScore):
        base = js_round(reputation.value * 30 - 12)
        return Signal("reputation", js_round(base * weight), "Reputation score")
    if reputation.value:
        return Signal("reputation", js_round(REPUTATION_GOOD_DELTA * weight), "Good reputation (boolean)")
    return Signal("reputation", js_round(REPUTATION_POOR_DELTA * weight), "Poor reputation")


def _score_domain_age(signals: NormalizedSignals) -> Signal | None:
    if signals.domain_age:
        return Signal("domainAge", js_round(DOMAIN_AGE_DELTA * signals.weights.domain_age), "Established domain")
    return Signal("domainAge", 0, "Unknown/new domain")


def _score_blocklist(signals: NormalizedSignals) -> Signal | None:
    if not signals.blocklist:
        return None
    weight = signals.weights.blocklist * signals.weights.domain_penalty_multiplier
    return Signal("blocklist", js_round(BLOCKLIST_DELTA * weight), "Listed on blocklist")


def matching_url_tokens(url: UrlParts) -> List[str]:
    return [
        token
        for token in SUSPICIOUS_URL_TOKENS
        if token in url.path_and_query or token in url.hostname
    ]


def _score_url_patterns(signals: NormalizedSignals) -> Signal | None:
    per_token = js_round(URL_PATTERN_PENALTY * signals.weights.url_pattern_multiplier)
    penalty = per_token * len(matching_url_tokens(signals.url))
    if penalty <= 0:
        return None
    penalty = min(penalty, URL_PATTERN_CAP)
    return Signal("urlPatterns", -penalty, "Suspicious URL path or query tokens")


def _score_url_params(signals: NormalizedSignals) -> Signal | None:
    if signals.url.parsed and len(signals.url.param_keys) >= URL_PARAMS_THRESHOLD:
        return Signal("url_params", URL_PARAMS_DELTA, "Many URL query parameters")
    return None


def _score_url_query_length(signals: NormalizedSignals) -> Signal | None:
    if signals.url.parsed and len(signals.url.query) > URL_QUERY_LENGTH_LIMIT:
        return Signal("url_query_length", URL_QUERY_LENGTH_DELTA, "Long query string")
    return None


def _score_domain_malware(signals: NormalizedSignals) -> Signal | None:
    if not signals.domain_reputation.malware:
        return None
    delta = js_round(DOMAIN_MALWARE_DELTA * signals.weights.domain_penalty_multiplier)
    return Signal("domain_malware", delta, "Known malware distributor")


def _score_domain_phishing(signals: NormalizedSignals) -> Signal | None:
    if not signals.domain_reputation.phishing:
        return None
    delta = js_round(DOMAIN_PHISHING_DELTA * signals.weights.domain_penalty_multiplier)
    return Signal("domain_phishing", delta, "Known phishing domain")


def _score_domain_penalties(signals: NormalizedSignals) -> Signal | None:
    penalties = signals.domain_reputation.penalties
    if penalties <= 0:
        return None
    mapped = js_round(math.log1p(penalties) * 10)
    penalty = min(js_round(mapped * signals.weights.domain_penalty_multiplier), DOMAIN_PENALTY_CAP)
    return Signal("domain_penalties", -penalty, "External reputation penalties")


SCORING_RULES: Tuple[Callable[[NormalizedSignals], Signal | None], ...] = (
    _score_ssl,
    _score_reputation,
    _score_domain_age,
    _score_blocklist,
    _score_url_patterns,
    _score_url_params,
    _score_url_query_length,
    _score_domain_malware,
    _score_domain_phishing,
    _score_domain_penalties,
)


def aggregate(signals: NormalizedSignals) -> Tuple[int, Tuple[Signal, ...]]:
    breakdown = []
    for rule in SCORING_RULES:
        entry = rule(signals)
        if entry is not None:
            breakdown.append(entry)
    raw_score = BASELINE_SCORE + sum(item.delta for item in breakdown)
    return raw_score, tuple(breakdown)


# ─── Confidence estimator ────────────────────────────────────────────────────

def estimate_confidence(breakdown, domain_reputation: DomainReputation) -> int:
    strong_pos = sum(1 for item in breakdown if item.delta >= STRONG_SIGNAL_THRESHOLD)
    strong_neg = sum(1 for item in breakdown if item.delta <= -STRONG_SIGNAL_THRESHOLD)
    moderate_pos = sum(1 for item in breakdown if 0 < item.delta < STRONG_SIGNAL_THRESHOLD)
    moderate_neg = sum(1 for item in breakdown if -STRONG_SIGNAL_THRESHOLD < item.delta < 0)

    confidence = (
        CONFIDENCE_BASE
        + CONFIDENCE_STRONG_STEP * (strong_pos - strong_neg)
        + CONFIDENCE_MODERATE_STEP * (moderate_pos - moderate_neg)
    )
    if domain_reputation.malware:
        confidence -= CONFIDENCE_THREAT_PENALTY
    if domain_reputation.phishing:
        confidence -= CONFIDENCE_THREAT_PENALTY
    return clamp_score(confidence)


# ─── Public entry points ─────────────────────────────────────────────────────

def compute_score(factors=None, domain_reputation=0, url: str = "", weights=None) -> ScoreResult:
    """Score one URL from its observed signals.

    ``domain_reputation`` may be a ``DomainReputation``, a mapping or a bare
    penalty number. ``weights`` may be a ``WeightProfile``, a partial mapping,
    a profile name or None (balanced). Malformed input degrades to defaults.
    """
    signals = normalize_signals(factors, domain_reputation, url, weights)
    raw_score, breakdown = aggregate(signals)
    return ScoreResult(
        score=clamp_score(raw_score),
        raw_score=raw_score,
        breakdown=breakdown,
        confidence=estimate_confidence(breakdown, signals.domain_reputation),
    )


def compare_profiles(factors=None, domain_reputation=0, url: str = "") -> Dict[str, ScoreResult]:
    return {
        name: compute_score(factors, domain_reputation, url, get_weight_profile(name))
        for name in WEIGHT_PROFILES
    }
