from commons_config import commons_settings


def test_metadata_language_prefers_setting(monkeypatch):
    monkeypatch.setattr(commons_settings, "METADATA_LANGUAGE", " de ")
    assert commons_settings.metadata_language() == "de"


def test_metadata_language_from_locale(monkeypatch):
    monkeypatch.setattr(commons_settings, "METADATA_LANGUAGE", "")
    monkeypatch.setattr(commons_settings.locale, "getlocale", lambda: ("fr_FR", "UTF-8"))
    assert commons_settings.metadata_language() == "fr"
    monkeypatch.setattr(commons_settings.locale, "getlocale", lambda: (None, None))
    assert commons_settings.metadata_language() == ""


def test_default_headers():
    headers = commons_settings.default_headers()
    assert headers["User-Agent"] == commons_settings.USER_AGENT
