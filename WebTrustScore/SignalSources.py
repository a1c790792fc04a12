"""Signal gathering for the trust score.

Every lookup here is optional and independently retried. A lookup that cannot
complete is logged and mapped to a neutral value, so the scoring engine always
receives a complete ``FactorSet`` and ``DomainReputation``.
"""
import ipaddress
import logging
import socket
import ssl
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Dict, List, Tuple
from urllib.parse import urlparse

import dns.exception
import dns.resolver
import requests
import whois

from TrustScore import DomainReputation, FactorSet
from TrustSettings import Settings, load_settings

logger = logging.getLogger(__name__)

SAFE_BROWSING_ENDPOINT = "https://safebrowsing.googleapis.com/v4/threatMatches:find"
URLHAUS_ENDPOINT = "https://urlhaus-api.abuse.ch/v1/url/"
VIRUSTOTAL_DOMAIN_ENDPOINT = "https://www.virustotal.com/api/v3/domains/{domain}"

SAFE_BROWSING_THREAT_TYPES = [
    "MALWARE",
    "SOCIAL_ENGINEERING",
    "UNWANTED_SOFTWARE",
    "POTENTIALLY_HARMFUL_APPLICATION",
]
MALWARE_THREAT_TYPES = {"MALWARE", "UNWANTED_SOFTWARE", "POTENTIALLY_HARMFUL_APPLICATION"}
PHISHING_THREAT_TYPES = {"SOCIAL_ENGINEERING"}

LOCAL_PHISH_BLOCKLIST = {
    "secure-paypaI-login.com",
    "microsoft-login-security-check.com",
    "appleid-account-verify.com",
    "bank-auth-update.net",
    "example-phishing.com",
    "fake-bank.com",
    "malware-site.com",
}


class LookupClient:
    def __init__(
        self,
        session: requests.Session | None = None,
        retries: int = 2,
        backoff: float = 0.4,
        timeout: float = 6.0,
        timeout_budget: float = 30.0,
    ):
        self.session = session or requests.Session()
        self.retries = retries
        self.backoff = backoff
        self.timeout = timeout
        self.timeout_budget = timeout_budget
        self.started_at = time.time()

    def reset_budget(self) -> None:
        self.started_at = time.time()

    @classmethod
    def from_settings(cls, settings: Settings, session: requests.Session | None = None) -> "LookupClient":
        return cls(session=session, retries=settings.http_retries, timeout=settings.http_timeout)

    def _budget_exhausted(self) -> bool:
        return (time.time() - self.started_at) > self.timeout_budget

    def request(self, method: str, url: str, **kwargs) -> requests.Response | None:
        if self._budget_exhausted():
            logger.warning("Lookup budget exhausted, skipping %s %s", method.upper(), url)
            return None
        kwargs.setdefault("timeout", self.timeout)
        for attempt in range(self.retries + 1):
            try:
                return self.session.request(method=method.upper(), url=url, **kwargs)
            except requests.RequestException as error:
                if attempt >= self.retries:
                    logger.warning("%s %s failed after %d attempts: %s", method.upper(), url, attempt + 1, error)
                    return None
                logger.debug("%s %s failed (attempt %d): %s", method.upper(), url, attempt + 1, error)
                time.sleep(self.backoff * (attempt + 1))
        return None

    def request_json(self, method: str, url: str, **kwargs) -> Tuple[int, Dict | None]:
        response = self.request(method, url, **kwargs)
        if response is None:
            return 0, None
        if response.status_code >= 400:
            logger.warning("%s %s returned HTTP %d", method.upper(), url, response.status_code)
            return response.status_code, None
        try:
            payload = response.json() if response.content else {}
        except ValueError:
            logger.warning("%s %s returned a non-JSON body", method.upper(), url)
            return response.status_code, None
        return response.status_code, payload if isinstance(payload, dict) else {}


def check_tls(url: str, timeout: float = 6.0) -> Dict:
    parsed = urlparse(url)
    if parsed.scheme.lower() != "https" or not parsed.hostname:
        return {"ssl": False, "status": "not_https", "detail": "HTTPS not in use", "tls_version": ""}

    hostname = parsed.hostname
    try:
        port = parsed.port or 443
    except ValueError:
        port = 443
    try:
        context = ssl.create_default_context()
        with socket.create_connection((hostname, port), timeout=timeout) as sock, context.wrap_socket(
            sock, server_hostname=hostname
        ) as ssock:
            tls_version = ssock.version() or ""
    except ssl.SSLError as error:
        return {"ssl": False, "status": "invalid", "detail": f"TLS handshake failed: {error}", "tls_version": ""}
    except OSError as error:
        logger.debug("TLS check for %s could not connect: %s", hostname, error)
        return {
            "ssl": True,
            "status": "unavailable",
            "detail": "Host unreachable; HTTPS inferred from URL scheme",
            "tls_version": "",
        }
    return {"ssl": True, "status": "valid", "detail": "Certificate valid", "tls_version": tls_version}


def _is_ip_address(hostname: str) -> bool:
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return True


def resolve_host(hostname: str, lifetime: float = 4.0) -> Dict:
    if not hostname:
        return {"status": "skipped", "addresses": []}
    if _is_ip_address(hostname):
        return {"status": "ip", "addresses": [hostname]}

    resolver = dns.resolver.Resolver()
    addresses: List[str] = []
    missing = 0
    for record_type in ["A", "AAAA"]:
        try:
            answers = resolver.resolve(hostname, record_type, lifetime=lifetime)
            addresses.extend(str(answer) for answer in answers)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            missing += 1
        except dns.exception.DNSException as error:
            logger.debug("DNS %s lookup for %s failed: %s", record_type, hostname, error)
    if addresses:
        return {"status": "resolved", "addresses": addresses}
    if missing == 2:
        return {"status": "nxdomain", "addresses": []}
    return {"status": "unavailable", "addresses": []}


def lookup_domain_age(hostname: str, min_days: int = 90, now: datetime | None = None) -> Dict:
    result = {
        "status": "skipped",
        "registrar": "",
        "creation_date": "",
        "days_old": None,
        "established": False,
    }
    if not hostname or _is_ip_address(hostname):
        return result
    try:
        info = whois.whois(hostname)
    except Exception as error:
        logger.warning("WHOIS lookup for %s failed: %s", hostname, error)
        result["status"] = "unavailable"
        return result

    if isinstance(info, dict):
        creation = info.get("creation_date")
        registrar = info.get("registrar")
    else:
        creation = getattr(info, "creation_date", None)
        registrar = getattr(info, "registrar", "")
    if isinstance(creation, list) and creation:
        creation = min((item for item in creation if isinstance(item, datetime)), default=None)
    result["registrar"] = str(registrar or "")

    if not isinstance(creation, datetime):
        result["status"] = "unknown"
        return result

    creation_utc = creation if creation.tzinfo else creation.replace(tzinfo=timezone.utc)
    days_old = ((now or datetime.now(timezone.utc)) - creation_utc).days
    result.update(
        {
            "status": "ok",
            "creation_date": creation.strftime("%Y-%m-%d"),
            "days_old": days_old,
            "established": days_old >= min_days,
        }
    )
    return result


def local_blocklist_lookup(hostname: str, blocklist=LOCAL_PHISH_BLOCKLIST) -> bool:
    host = (hostname or "").lower()
    return bool(host) and host in {domain.lower() for domain in blocklist}


def urlhaus_lookup(url: str, client: LookupClient) -> Dict:
    status_code, payload = client.request_json("POST", URLHAUS_ENDPOINT, data={"url": url})
    if payload is None:
        return {"listed": False, "status": "unavailable" if not status_code else f"error_http_{status_code}"}
    query_status = str(payload.get("query_status", "") or "unknown")
    return {"listed": query_status == "ok", "status": query_status}


def safe_browsing_lookup(url: str, api_key: str, client: LookupClient) -> Dict:
    body = {
        "client": {"clientId": "webtrustscore", "clientVersion": "1.0"},
        "threatInfo": {
            "threatTypes": SAFE_BROWSING_THREAT_TYPES,
            "platformTypes": ["ANY_PLATFORM"],
            "threatEntryTypes": ["URL"],
            "threatEntries": [{"url": url}],
        },
    }
    status_code, payload = client.request_json("POST", SAFE_BROWSING_ENDPOINT, params={"key": api_key}, json=body)
    if payload is None:
        status = "unavailable" if not status_code else f"error_http_{status_code}"
        return {"listed": False, "status": status, "threat_types": []}

    matches = payload.get("matches") or []
    threat_types = sorted({str(match.get("threatType", "")) for match in matches if isinstance(match, dict)} - {""})
    if not threat_types:
        return {"listed": False, "status": "clean", "threat_types": []}
    return {"listed": True, "status": "match", "threat_types": threat_types}


def virustotal_domain_lookup(hostname: str, api_key: str, client: LookupClient) -> Dict:
    result = {"status": "unavailable", "malicious": 0, "suspicious": 0, "harmless": 0, "undetected": 0}
    status_code, payload = client.request_json(
        "GET",
        VIRUSTOTAL_DOMAIN_ENDPOINT.format(domain=hostname),
        headers={"x-apikey": api_key},
    )
    if payload is None:
        if status_code:
            result["status"] = f"error_http_{status_code}"
        return result

    stats = payload.get("data", {}).get("attributes", {}).get("last_analysis_stats", {}) or {}
    for name in ["malicious", "suspicious", "harmless", "undetected"]:
        try:
            result[name] = max(0, int(stats.get(name, 0) or 0))
        except (TypeError, ValueError):
            result[name] = 0
    result["status"] = "ok"
    return result


def _skipped(status: str = "skipped") -> Dict[str, Dict]:
    return {
        "dns": {"status": status, "addresses": []},
        "whois": {"status": status, "registrar": "", "creation_date": "", "days_old": None, "established": False},
        "urlhaus": {"listed": False, "status": status},
        "safe_browsing": {"listed": False, "status": status, "threat_types": []},
        "virustotal": {"status": status, "malicious": 0, "suspicious": 0, "harmless": 0, "undetected": 0},
    }


def _run_lookups(tasks: Dict[str, Tuple[Callable, tuple]], defaults: Dict[str, Dict]) -> Dict[str, Dict]:
    results: Dict[str, Dict] = {}
    if not tasks:
        return results
    with ThreadPoolExecutor(max_workers=len(tasks)) as executor:
        future_map = {name: executor.submit(func, *args) for name, (func, args) in tasks.items()}
        for name, future in future_map.items():
            try:
                results[name] = future.result()
            except Exception as error:
                logger.warning("%s lookup raised %s: %s", name, type(error).__name__, error)
                results[name] = dict(defaults[name], status="error")
    return results


def gather_signals(
    url: str,
    settings: Settings | None = None,
    client: LookupClient | None = None,
    offline: bool = False,
) -> Dict:
    settings = settings or load_settings()
    parsed = urlparse(url)
    hostname = (parsed.hostname or "").lower()
    is_https = parsed.scheme.lower() == "https"

    details = _skipped()
    details["tls"] = {
        "ssl": is_https,
        "status": "skipped",
        "detail": "HTTPS inferred from URL scheme",
        "tls_version": "",
    }

    if not offline:
        client = client or LookupClient.from_settings(settings)
        client.reset_budget()
        tasks: Dict[str, Tuple[Callable, tuple]] = {
            "tls": (check_tls, (url, settings.http_timeout)),
            "dns": (resolve_host, (hostname,)),
        }
        remote_allowed = not settings.skip_remote_reputation
        if remote_allowed:
            tasks["whois"] = (lookup_domain_age, (hostname, settings.domain_age_days))
            tasks["urlhaus"] = (urlhaus_lookup, (url, client))
            if settings.gsb_api_key:
                tasks["safe_browsing"] = (safe_browsing_lookup, (url, settings.gsb_api_key, client))
            else:
                details["safe_browsing"]["status"] = "not_configured"
            if settings.vt_api_key and hostname:
                tasks["virustotal"] = (virustotal_domain_lookup, (hostname, settings.vt_api_key, client))
            else:
                details["virustotal"]["status"] = "not_configured"
        details.update(_run_lookups(tasks, details))

    findings: List[str] = []
    local_listed = local_blocklist_lookup(hostname)
    if local_listed:
        findings.append("Hostname matched local phishing blocklist")
    if details["urlhaus"].get("listed"):
        findings.append("URL found in URLhaus phishing/malware feed")

    threat_types = set(details["safe_browsing"].get("threat_types", []))
    if threat_types:
        findings.append(f"Google Safe Browsing matched: {', '.join(sorted(threat_types))}")
    if details["dns"].get("status") == "nxdomain":
        findings.append("Hostname does not resolve")
    if details["whois"].get("status") == "ok" and not details["whois"].get("established"):
        findings.append(f"Domain registered {details['whois'].get('days_old')} days ago")
    if details["tls"].get("status") == "invalid":
        findings.append(str(details["tls"].get("detail", "TLS handshake failed")))

    vt = details["virustotal"]
    penalties = 0
    reputation: bool | float = details["dns"].get("status") != "nxdomain" and not details["safe_browsing"].get("listed")
    if vt.get("status") == "ok":
        penalties = vt["malicious"] + vt["suspicious"]
        judged = vt["harmless"] + vt["malicious"] + vt["suspicious"]
        if judged > 0:
            reputation = vt["harmless"] / judged
        if penalties:
            findings.append(f"VirusTotal: {vt['malicious']} malicious, {vt['suspicious']} suspicious verdicts")

    factors = FactorSet(
        ssl=bool(details["tls"].get("ssl")),
        reputation=reputation,
        domain_age=bool(details["whois"].get("established")),
        blocklist=local_listed or bool(details["urlhaus"].get("listed")),
    )
    domain_reputation = DomainReputation(
        penalties=float(penalties),
        malware=bool(threat_types & MALWARE_THREAT_TYPES),
        phishing=bool(threat_types & PHISHING_THREAT_TYPES),
    )
    return {
        "url": url,
        "hostname": hostname,
        "factors": factors,
        "domain_reputation": domain_reputation,
        "sources": {name: str(info.get("status", "")) for name, info in details.items()},
        "details": details,
        "findings": findings,
    }
