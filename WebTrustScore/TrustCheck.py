import argparse
import json
import logging
from datetime import datetime
from typing import Dict, List
from urllib.parse import urlparse

from colorama import init
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ScoreCache import ScoreCache
from SignalSources import LookupClient, gather_signals
from TrustScore import (
    WEIGHT_PROFILE_LABELS,
    WEIGHT_PROFILE_METADATA,
    WEIGHT_PROFILES,
    PROFILE_ALIASES,
    DomainReputation,
    FactorSet,
    ScoreResult,
    compare_profiles,
    compute_score,
    get_weight_profile,
    resolve_profile_name,
)
from TrustSettings import Settings, load_settings

init(autoreset=True)
console = Console()
logger = logging.getLogger(__name__)

APP_NAME = "Web Trust Score"
APP_VERSION = "1.0.0"
APP_RELEASE = "2026-10-17"
APP_TAGLINE = "Explainable website trust scoring"
VERDICT_CLASSES = ["Safe", "Caution", "High Risk"]


def cli_version_text() -> str:
    return (
        f"{APP_NAME} v{APP_VERSION} ({APP_RELEASE}) | "
        f"{APP_TAGLINE} | profiles={','.join(WEIGHT_PROFILES)}"
    )


def configure_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def normalize_target_url(url: str) -> str:
    candidate = (url or "").strip()
    if not candidate:
        return ""
    if not urlparse(candidate).scheme:
        candidate = f"https://{candidate}"
    return candidate


def score_band(score: int) -> str:
    if score >= 80:
        return "Safe"
    if score >= 50:
        return "Caution"
    return "High Risk"


def confidence_level(confidence: int) -> str:
    if confidence >= 70:
        return "High"
    if confidence >= 40:
        return "Medium"
    return "Low"


def band_rich_style(band: str) -> str:
    if band == "High Risk":
        return "bold red"
    if band == "Caution":
        return "bold yellow"
    return "bold green"


def delta_text(delta: int) -> str:
    return f"+{delta}" if delta > 0 else str(delta)


def analyze_url(
    target_url: str,
    weight_profile: str = "balanced",
    settings: Settings | None = None,
    cache: ScoreCache | None = None,
    client: LookupClient | None = None,
    offline: bool = False,
) -> Dict:
    settings = settings or load_settings()
    profile_key = resolve_profile_name(weight_profile)
    normalized_url = normalize_target_url(target_url)
    hostname = (urlparse(normalized_url).hostname or "").lower() if normalized_url else ""
    if not hostname:
        return {"target": target_url, "ok": False, "error": "Unable to analyze: no usable hostname in URL"}

    result = {
        "target": normalized_url,
        "hostname": hostname,
        "ok": True,
        "profile": profile_key,
        "profile_label": WEIGHT_PROFILE_LABELS.get(profile_key, profile_key.title()),
        "checked_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
    }

    cached = cache.get(hostname, profile=profile_key) if cache is not None else None
    if cached:
        score_result = cached["result"]
        result.update(
            {
                "cached": True,
                "signals": None,
                "checked_at": datetime.fromtimestamp(cached["timestamp"]).strftime("%Y-%m-%d %H:%M:%S"),
            }
        )
    else:
        signals = gather_signals(normalized_url, settings=settings, client=client, offline=offline)
        score_result = compute_score(
            signals["factors"],
            signals["domain_reputation"],
            normalized_url,
            get_weight_profile(profile_key),
        )
        if cache is not None:
            cache.put(hostname, score_result, profile=profile_key)
        result.update({"cached": False, "signals": signals})

    result["score_result"] = score_result
    result["band"] = score_band(score_result.score)
    result["confidence_level"] = confidence_level(score_result.confidence)
    return result


def result_to_json(result: Dict) -> Dict:
    payload = {key: value for key, value in result.items() if key not in {"score_result", "signals"}}
    score_result = result.get("score_result")
    if isinstance(score_result, ScoreResult):
        payload.update(score_result.to_dict())
    signals = result.get("signals")
    if signals:
        factors: FactorSet = signals["factors"]
        payload["factors"] = {
            "ssl": factors.ssl,
            "reputation": factors.reputation,
            "domainAge": factors.domain_age,
            "blocklist": factors.blocklist,
        }
        payload["domainReputation"] = signals["domain_reputation"].to_dict()
        payload["sources"] = signals["sources"]
        payload["findings"] = signals["findings"]
    return payload


def print_terminal_report(result: Dict):
    console.rule("[bold cyan]Website Trust Score")
    console.print(f"[bold]Target:[/bold] {result.get('target', '')}")

    if not result.get("ok"):
        console.print(f"[bold red]Scan failed:[/bold red] {result.get('error', 'Unknown error')}")
        return

    score_result: ScoreResult = result["score_result"]
    band = result["band"]
    overview = Table(box=box.SIMPLE_HEAVY, expand=True)
    overview.add_column("Check", style="bold cyan")
    overview.add_column("Result")
    overview.add_row("Trust Score", f"[{band_rich_style(band)}]{score_result.score}/100 ({band})[/]")
    overview.add_row("Raw Score", str(score_result.raw_score))
    overview.add_row("Confidence", f"{score_result.confidence}/100 ({result.get('confidence_level', '')})")
    overview.add_row("Weight Profile", result.get("profile_label", ""))
    overview.add_row("Source", "cache" if result.get("cached") else "fresh scan")
    console.print(Panel(overview, title="Overview", border_style="cyan"))

    breakdown_table = Table(box=box.MINIMAL_DOUBLE_HEAD, expand=True)
    breakdown_table.add_column("Signal", style="cyan")
    breakdown_table.add_column("Delta", justify="right")
    breakdown_table.add_column("Note")
    for item in score_result.breakdown:
        style = "green" if item.delta > 0 else "red" if item.delta < 0 else "dim"
        breakdown_table.add_row(item.key, f"[{style}]{delta_text(item.delta)}[/]", item.note)
    console.print(Panel(breakdown_table, title="Breakdown", border_style="magenta"))

    signals = result.get("signals")
    if signals:
        source_lines = [f"{name}: {status}" for name, status in signals["sources"].items()]
        findings = signals["findings"] or ["No reputation findings"]
        console.print(Panel("\n".join(source_lines), title="Signal Sources", border_style="blue"))
        console.print(Panel("\n".join(f"• {item}" for item in findings), title="Findings", border_style="red"))


def print_profile_comparison(comparison: Dict[str, ScoreResult]):
    table = Table(box=box.MINIMAL_DOUBLE_HEAD, expand=True)
    table.add_column("Profile", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Raw", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Focus")
    for name, score_result in comparison.items():
        band = score_band(score_result.score)
        table.add_row(
            WEIGHT_PROFILE_LABELS.get(name, name.title()),
            f"[{band_rich_style(band)}]{score_result.score}[/]",
            str(score_result.raw_score),
            str(score_result.confidence),
            WEIGHT_PROFILE_METADATA.get(name, {}).get("focus", ""),
        )
    console.print(Panel(table, title="Profile Comparison", border_style="bright_blue"))


def generate_report(result: Dict, output_file: str = "trust_report.md"):
    checked_at = str(result.get("checked_at", datetime.now().strftime("%Y-%m-%d %H:%M:%S")))

    if not result.get("ok"):
        markdown = (
            "# Website Trust Report\n\n"
            f"- Generated: {checked_at}\n"
            f"- Status: Failed\n"
            f"- Error: {result.get('error', 'Unknown error')}\n"
        )
        with open(output_file, "w", encoding="utf-8") as file:
            file.write(markdown)
        console.print(f"\n[bold green]Markdown report saved →[/bold green] {output_file}")
        return

    score_result: ScoreResult = result["score_result"]
    profile_key = result.get("profile", "balanced")
    lines: List[str] = []
    lines.append("# Website Trust Report")
    lines.append("")
    lines.append(f"- Generated: {checked_at}")
    lines.append(f"- Target: {result.get('target', '')}")
    lines.append(f"- Verdict: {result.get('band', '')}")
    lines.append(f"- Source: {'cache' if result.get('cached') else 'fresh scan'}")
    lines.append("")

    lines.append("## Score")
    lines.append(f"- Score: {score_result.score}/100")
    lines.append(f"- Raw Score: {score_result.raw_score}")
    lines.append(f"- Confidence: {score_result.confidence}/100 ({result.get('confidence_level', '')})")
    lines.append(f"- Profile: {result.get('profile_label', profile_key)}")
    lines.append(f"- Profile Focus: {WEIGHT_PROFILE_METADATA.get(profile_key, {}).get('focus', '')}")
    lines.append("")

    lines.append("## Breakdown")
    lines.append("| Signal | Delta | Note |")
    lines.append("|---|---:|---|")
    for item in score_result.breakdown:
        lines.append(f"| {item.key} | {delta_text(item.delta)} | {item.note} |")
    lines.append("")

    signals = result.get("signals")
    lines.append("## Signal Sources")
    if signals:
        lines.extend(f"- {name}: {status}" for name, status in signals["sources"].items())
    else:
        lines.append("- Served from cache; sources were not re-queried.")
    lines.append("")

    lines.append("## Findings")
    findings = signals["findings"] if signals else []
    lines.extend([f"- {item}" for item in findings] if findings else ["- No reputation findings"])

    markdown = "\n".join(lines).rstrip() + "\n"
    with open(output_file, "w", encoding="utf-8") as file:
        file.write(markdown)
    console.print(f"\n[bold green]Markdown report saved →[/bold green] {output_file}")


def load_factors_file(path: str) -> Dict:
    with open(path, "r", encoding="utf-8") as file:
        data = json.load(file)
    if not isinstance(data, dict):
        raise ValueError("factors file must contain a JSON object")
    return {
        "factors": FactorSet.from_value(data.get("factors")),
        "domain_reputation": DomainReputation.from_value(data.get("domainReputation", data.get("domain_reputation", 0))),
        "url": str(data.get("url", "") or ""),
        "weights": data.get("weights"),
    }


# ─── CLI ─────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="webtrust",
        description="Website trust scorer (Rich terminal + Markdown report)",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=cli_version_text(),
        help="Show tool version and exit",
    )
    parser.add_argument("url", nargs="?", help="Website URL to score")
    parser.add_argument(
        "--weight-profile",
        choices=sorted(set(WEIGHT_PROFILES) | set(PROFILE_ALIASES)),
        default=None,
        help="Weight profile (safe, balanced, strict); defaults to WEBTRUST_PROFILE or balanced",
    )
    parser.add_argument(
        "--markdown-output",
        "--md-output",
        default="",
        dest="markdown_output",
        help="Write a Markdown report to this file",
    )
    parser.add_argument("--json", action="store_true", help="Print the result as JSON instead of tables")
    parser.add_argument("--offline", action="store_true", help="Skip every network lookup")
    parser.add_argument("--no-cache", action="store_true", help="Ignore and do not update the result cache")
    parser.add_argument(
        "--compare-profiles",
        action="store_true",
        help="Score the same signals under every weight profile",
    )
    parser.add_argument(
        "--factors-file",
        default="",
        help="JSON file with factors, domainReputation, url and weights to score without network access",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    settings = load_settings()
    profile = resolve_profile_name(args.weight_profile or settings.profile)

    if args.factors_file:
        try:
            document = load_factors_file(args.factors_file)
        except (OSError, ValueError) as exc:
            parser.error(f"Could not read factors file: {exc}")
        if args.compare_profiles:
            comparison = compare_profiles(document["factors"], document["domain_reputation"], document["url"])
            if args.json:
                console.print_json(data={name: item.to_dict() for name, item in comparison.items()})
            else:
                print_profile_comparison(comparison)
            return 0
        weights = document["weights"] if document["weights"] is not None else get_weight_profile(profile)
        score_result = compute_score(document["factors"], document["domain_reputation"], document["url"], weights)
        result = {
            "target": document["url"],
            "hostname": (urlparse(document["url"]).hostname or "") if document["url"] else "",
            "ok": True,
            "profile": profile if document["weights"] is None else "custom",
            "profile_label": WEIGHT_PROFILE_LABELS.get(profile, "Custom") if document["weights"] is None else "Custom",
            "checked_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "cached": False,
            "signals": None,
            "score_result": score_result,
            "band": score_band(score_result.score),
            "confidence_level": confidence_level(score_result.confidence),
        }
    else:
        if not args.url:
            parser.error("URL is required unless --factors-file is given.")
        cache = None if args.no_cache else ScoreCache(settings.cache_file or None, settings.cache_seconds)
        result = analyze_url(args.url, profile, settings=settings, cache=cache, offline=args.offline)
        if args.compare_profiles and result.get("ok"):
            signals = result.get("signals") or gather_signals(result["target"], settings=settings, offline=args.offline)
            comparison = compare_profiles(signals["factors"], signals["domain_reputation"], result["target"])
            if args.json:
                console.print_json(data={name: item.to_dict() for name, item in comparison.items()})
            else:
                print_profile_comparison(comparison)
            return 0

    if args.json:
        console.print_json(data=result_to_json(result))
    else:
        print_terminal_report(result)
    if args.markdown_output:
        generate_report(result, args.markdown_output)
    return 0 if result.get("ok") else 1


if __name__ == "__main__":
    raise SystemExit(main())
