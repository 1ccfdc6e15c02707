import config


def _set(monkeypatch, **values):
    for name, value in values.items():
        monkeypatch.setattr(config, name, value)


def test_memory_store_with_mock_needs_no_keys():
    assert config.validate_config(store="memory", mock=True) == (True, [])


def test_supabase_keys_are_required(monkeypatch):
    _set(monkeypatch, SUPABASE_URL="", SUPABASE_KEY="")
    valid, errors = config.validate_config(store="supabase", mock=True)
    assert not valid
    assert errors == ["SUPABASE_URL is not set", "SUPABASE_KEY is not set"]


def test_notion_keys_are_required(monkeypatch):
    _set(monkeypatch, NOTION_API_KEY="secret", NOTION_DATABASE_ID="")
    valid, errors = config.validate_config(store="notion", mock=True)
    assert not valid
    assert errors == ["NOTION_DATABASE_ID is not set"]


def test_unknown_store_is_rejected():
    valid, errors = config.validate_config(store="sqlite", mock=True)
    assert not valid
    assert "Unknown RECORD_STORE" in errors[0]


def test_service_keys_checked_unless_mock(monkeypatch):
    _set(
        monkeypatch,
        PERPLEXITY_API_KEY="",
        OPENROUTER_API_KEY="or-key",
        CONTENT_EXTRACTOR="firecrawl",
        FIRECRAWL_API_KEY="",
    )
    valid, errors = config.validate_config(store="memory", mock=False)
    assert not valid
    assert errors == [
        "PERPLEXITY_API_KEY is not set",
        "FIRECRAWL_API_KEY is not set (or use CONTENT_EXTRACTOR=html)",
    ]


def test_html_extractor_needs_no_firecrawl_key(monkeypatch):
    _set(
        monkeypatch,
        PERPLEXITY_API_KEY="p",
        OPENROUTER_API_KEY="o",
        CONTENT_EXTRACTOR="html",
        FIRECRAWL_API_KEY="",
    )
    assert config.validate_config(store="memory", mock=False) == (True, [])


def test_persona_tracks_and_defaults():
    assert [t.tag for t in config.PERSONA_TRACKS] == [
        "persona:mcp_developer",
        "persona:startup_founder",
        "persona:vc_investor",
    ]
    assert config.RETRY_MAX_RETRIES >= 0
    assert config.SAVE_BATCH_SIZE >= 1
