from TrustSettings import Settings, load_settings


def test_defaults_when_environment_is_empty():
    settings = load_settings({})

    assert settings == Settings()
    assert settings.cache_seconds == 15 * 60
    assert settings.domain_age_days == 90


def test_reads_keys_with_fallback_names():
    settings = load_settings(
        {
            "GOOGLE_SAFE_BROWSING_API_KEY": "gsb-fallback",
            "WEBTRUST_VT_API_KEY": "vt-primary",
            "VT_API_KEY": "vt-fallback",
            "WEBTRUST_SKIP_REMOTE_REPUTATION": "1",
            "WEBTRUST_PROFILE": "strict",
            "WEBTRUST_CACHE_MINUTES": "5",
        }
    )

    assert settings.gsb_api_key == "gsb-fallback"
    assert settings.vt_api_key == "vt-primary"
    assert settings.skip_remote_reputation is True
    assert settings.profile == "strict"
    assert settings.cache_seconds == 300


def test_malformed_numbers_fall_back_to_defaults():
    settings = load_settings(
        {
            "WEBTRUST_CACHE_MINUTES": "soon",
            "WEBTRUST_DOMAIN_AGE_DAYS": "-4",
            "WEBTRUST_HTTP_RETRIES": "2.5",
        }
    )

    assert settings.cache_minutes == 15
    assert settings.domain_age_days == 90
    assert settings.http_retries == 2
