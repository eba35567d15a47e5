from __future__ import annotations

import pytest

from offline_notes.config import Settings


def test_settings_development_allows_placeholders():
    s = Settings.model_validate({"environment": "development"})
    assert s.notes_url() == "http://localhost:3000/api/notes"
    assert "NOTES_API_TOKEN is empty; remote calls will be unauthorized" in s.security_warnings()


def test_settings_production_requires_token_and_https():
    with pytest.raises(Exception) as excinfo:
        Settings.model_validate({"environment": "production"})

    msg = str(excinfo.value)
    assert "NOTES_API_TOKEN" in msg
    assert "NOTES_API_BASE_URL" in msg


def test_settings_production_accepts_complete_config():
    s = Settings.model_validate(
        {
            "environment": "production",
            "notes_api_base_url": "https://notes.example.com/",
            "notes_api_token": "secret",
        }
    )
    assert s.notes_url() == "https://notes.example.com/api/notes"
    assert s.security_warnings() == []


def test_settings_token_alias(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("NOTES_API_TOKEN", raising=False)
    monkeypatch.setenv("NOTES_TOKEN", "from-alias")

    assert Settings().notes_api_token == "from-alias"
