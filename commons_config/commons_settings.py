"""Settings for the Wikimedia Commons services."""
from __future__ import annotations

import locale
import os
from typing import Dict

USER_AGENT: str = os.getenv("COMMONS_USER_AGENT", "CommonsApiClient/1.0 (+contact@yourdomain)")
TOOLFORGE_URL: str = os.getenv(
    "COMMONS_TOOLFORGE_URL", "https://tools.wmflabs.org/urbanecmbot/commonsmisc"
)
FEEDBACK_PATH: str = os.getenv("COMMONS_FEEDBACK_PATH", "/feedback.py")
SPARQL_URL: str = os.getenv("COMMONS_SPARQL_URL", "https://query.wikidata.org/sparql")
CAMPAIGNS_URL: str = os.getenv(
    "COMMONS_CAMPAIGNS_URL",
    "https://raw.githubusercontent.com/commons-app/campaigns/master/campaigns.json",
)
COMMONS_API_URL: str = os.getenv("COMMONS_API_URL", "https://commons.wikimedia.org/w/api.php")
HTTP_TIMEOUT: float = float(os.getenv("COMMONS_HTTP_TIMEOUT", "10"))
KV_STORE_DIR: str = os.getenv("COMMONS_KV_STORE_DIR", "out/kvstore")
METADATA_LANGUAGE: str = os.getenv("COMMONS_METADATA_LANGUAGE", "")

QUERY_CONTINUE_PREFIX: str = "query_continue_"
RECENT_CHANGES_WINDOW_SEC: int = 60 * 60 * 24 * 30


def default_headers() -> Dict[str, str]:
    """Return default HTTP headers for Wikimedia APIs."""
    return {"User-Agent": USER_AGENT, "Accept": "application/json"}


def metadata_language() -> str:
    """Language used for ``iiextmetadatalanguage``, empty when unknown.

    ``METADATA_LANGUAGE`` wins; otherwise the language part of the process
    locale (``fr_FR`` -> ``fr``) is used.
    """
    if METADATA_LANGUAGE.strip():
        return METADATA_LANGUAGE.strip()
    try:
        code = locale.getlocale()[0]
    except ValueError:
        return ""
    if not code or code in ("C", "POSIX"):
        return ""
    return code.split("_")[0].split("-")[0].lower()


__all__ = [
    "USER_AGENT",
    "TOOLFORGE_URL",
    "FEEDBACK_PATH",
    "SPARQL_URL",
    "CAMPAIGNS_URL",
    "COMMONS_API_URL",
    "HTTP_TIMEOUT",
    "KV_STORE_DIR",
    "METADATA_LANGUAGE",
    "QUERY_CONTINUE_PREFIX",
    "RECENT_CHANGES_WINDOW_SEC",
    "default_headers",
    "metadata_language",
]
