import json

import pytest

import TrustCheck as checker
from ScoreCache import ScoreCache
from TrustSettings import Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ["WEBTRUST_PROFILE", "WEBTRUST_CACHE_FILE", "WEBTRUST_SKIP_REMOTE_REPUTATION"]:
        monkeypatch.delenv(name, raising=False)


def test_normalize_target_url_adds_https_when_missing_scheme():
    assert checker.normalize_target_url("example.com") == "https://example.com"
    assert checker.normalize_target_url("http://example.com") == "http://example.com"
    assert checker.normalize_target_url("   ") == ""


def test_score_band_thresholds():
    assert checker.score_band(100) == "Safe"
    assert checker.score_band(80) == "Safe"
    assert checker.score_band(79) == "Caution"
    assert checker.score_band(50) == "Caution"
    assert checker.score_band(49) == "High Risk"
    assert checker.score_band(0) == "High Risk"


def test_analyze_url_offline_scores_and_caches():
    cache = ScoreCache()

    first = checker.analyze_url("example.com", "balanced", settings=Settings(), cache=cache, offline=True)
    second = checker.analyze_url("https://EXAMPLE.com", "balanced", settings=Settings(), cache=cache, offline=True)

    assert first["ok"] is True
    assert first["cached"] is False
    # ssl +20, boolean reputation +8, unknown domain age 0
    assert first["score_result"].score == 83
    assert first["band"] == "Safe"
    assert second["cached"] is True
    assert second["score_result"] == first["score_result"]


def test_analyze_url_profile_alias_and_cache_miss_on_other_profile():
    cache = ScoreCache()
    checker.analyze_url("http://login.example.com", "neutral", settings=Settings(), cache=cache, offline=True)

    strict = checker.analyze_url("http://login.example.com", "conservative", settings=Settings(), cache=cache, offline=True)

    assert strict["profile"] == "strict"
    assert strict["cached"] is False
    assert strict["score_result"].signal("urlPatterns").delta == -22


def test_analyze_url_without_hostname_reports_failure():
    result = checker.analyze_url("", settings=Settings(), offline=True)
    assert result["ok"] is False
    assert "Unable to analyze" in result["error"]


def test_generate_report_writes_breakdown(tmp_path):
    result = checker.analyze_url("http://malware-site.com", settings=Settings(), offline=True)
    output = tmp_path / "report.md"

    checker.generate_report(result, str(output))

    text = output.read_text(encoding="utf-8")
    assert text.startswith("# Website Trust Report")
    assert "| blocklist | -40 | Listed on blocklist |" in text
    assert "- Hostname matched local phishing blocklist" in text


def test_generate_report_for_failed_scan(tmp_path):
    output = tmp_path / "failed.md"
    checker.generate_report({"ok": False, "error": "Unable to analyze"}, str(output))
    assert "- Status: Failed" in output.read_text(encoding="utf-8")


def test_result_to_json_flattens_score_result():
    result = checker.analyze_url("https://example.com", settings=Settings(), offline=True)
    payload = checker.result_to_json(result)

    assert payload["score"] == 83
    assert payload["rawScore"] == 83
    assert payload["factors"]["domainAge"] is False
    assert payload["domainReputation"] == {"penalties": 0.0, "malware": False, "phishing": False}
    json.dumps(payload)


def test_main_scores_factors_file_without_network(tmp_path, capsys):
    document = {
        "factors": {"ssl": True, "reputation": True, "domainAge": True, "blocklist": False},
        "domainReputation": 0,
        "url": "https://example.com",
    }
    factors_file = tmp_path / "factors.json"
    factors_file.write_text(json.dumps(document), encoding="utf-8")
    report = tmp_path / "report.md"

    exit_code = checker.main(["--factors-file", str(factors_file), "--markdown-output", str(report)])

    assert exit_code == 0
    assert "- Score: 89/100" in report.read_text(encoding="utf-8")


def test_main_compare_profiles_json(tmp_path, capsys):
    document = {
        "factors": {"ssl": True, "reputation": True, "domainAge": True, "blocklist": False},
        "url": "http://verify.example.com/login",
    }
    factors_file = tmp_path / "factors.json"
    factors_file.write_text(json.dumps(document), encoding="utf-8")

    exit_code = checker.main(["--factors-file", str(factors_file), "--compare-profiles", "--json"])

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["safe"]["score"] == 72
    assert payload["strict"]["score"] == 46


def test_main_offline_url_without_cache(capsys):
    exit_code = checker.main(["https://example.com", "--offline", "--no-cache", "--json"])

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["hostname"] == "example.com"
    assert payload["breakdown"][0]["key"] == "ssl"


def test_main_requires_url_or_factors_file():
    with pytest.raises(SystemExit):
        checker.main([])


def test_main_rejects_unreadable_factors_file(tmp_path):
    broken = tmp_path / "factors.json"
    broken.write_text("{not json", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        checker.main(["--factors-file", str(broken)])
    assert excinfo.value.code == 2


def test_main_compare_profiles_skips_single_profile_scoring(tmp_path, monkeypatch, capsys):
    factors_file = tmp_path / "factors.json"
    factors_file.write_text(json.dumps({"factors": {"ssl": True}, "url": "https://example.com"}), encoding="utf-8")

    def unexpected(*args, **kwargs):
        raise AssertionError("single-profile score computed for a comparison")

    monkeypatch.setattr(checker, "compute_score", unexpected)

    assert checker.main(["--factors-file", str(factors_file), "--compare-profiles", "--json"]) == 0
    assert set(json.loads(capsys.readouterr().out)) == {"safe", "balanced", "strict"}
