"""Client for the Wikimedia Commons web services.

Every public method returns a :class:`~commons_services.deferred.Deferred`;
the HTTP call only happens when the deferred is run. Failed requests are
logged and turned into neutral values (``0``, ``None`` or ``[]``); decoding
errors propagate except for :meth:`CommonsApiClient.get_achievements`.
"""
from __future__ import annotations

import json
import logging
import random
import threading
import time
import weakref
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Sequence, Tuple
from urllib.parse import quote

import requests

from commons_config import commons_settings
from commons_services.date_utils import format_mw_date, get_current_date
from commons_services.deferred import Deferred
from commons_services.kv_store import JsonKvStore
from commons_services.models import (
    CampaignResponse,
    FeedbackResponse,
    LatLng,
    Media,
    MediaPage,
    MwQueryResponse,
    NearbyResponse,
    Place,
    RecentChange,
    Revision,
    WikidataEditCountResponse,
)

logger = logging.getLogger(__name__)

Params = List[Tuple[str, str]]

QUERIES_DIR = Path(__file__).with_name("queries")
FILE_NAMESPACE = "6"
SEARCH_LIMIT = "25"
CATEGORY_LIMIT = "10"
EXTMETADATA_FILTER = (
    "DateTime|Categories|GPSLatitude|GPSLongitude|ImageDescription"
    "|DateTimeOriginal|Artist|LicenseShortName"
)


def read_query(name: str) -> str:
    """Return the text of a bundled query template."""
    return (QUERIES_DIR / name).read_text(encoding="utf-8")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class HttpResult:
    """Outcome of a single GET: either a 2xx body or a failure description."""

    ok: bool
    status_code: int = 0
    text: str = ""
    error: str | None = None
    elapsed_ms: float = 0.0

    def json(self) -> Any:
        return json.loads(self.text)


class CommonsApiClient:
    """Thin client over the Commons, Wikidata and toolforge endpoints."""

    def __init__(
        self,
        session: requests.Session | None = None,
        kv_store: JsonKvStore | None = None,
        *,
        toolforge_url: str | None = None,
        sparql_url: str | None = None,
        campaigns_url: str | None = None,
        commons_api_url: str | None = None,
        feedback_path: str | None = None,
        timeout: float | None = None,
        rng: random.Random | None = None,
    ) -> None:
        if session is None:
            session = requests.Session()
            session.headers.update(commons_settings.default_headers())
        self._session = session
        self._kv_store = kv_store if kv_store is not None else JsonKvStore()
        self.toolforge_url = (toolforge_url or commons_settings.TOOLFORGE_URL).rstrip("/")
        self.sparql_url = sparql_url or commons_settings.SPARQL_URL
        self.campaigns_url = campaigns_url or commons_settings.CAMPAIGNS_URL
        self.commons_api_url = commons_api_url or commons_settings.COMMONS_API_URL
        self.feedback_path = feedback_path or commons_settings.FEEDBACK_PATH
        self.timeout = timeout if timeout is not None else commons_settings.HTTP_TIMEOUT
        self._rng = rng or random.Random()
        # entries vanish once no run holds the lock
        self._locks: weakref.WeakValueDictionary[str, Any] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    # --- Statistics -------------------------------------------------------

    def get_upload_count(self, user_name: str) -> Deferred[int]:
        """Number of files uploaded by ``user_name``.

        The endpoint answers with a bare integer; a non numeric body raises
        ``ValueError``.
        """
        url = self._toolforge("/uploadsbyuser.py")
        params: Params = [("user", user_name)]

        def work() -> int:
            result = self._execute(url, params, "upload_count")
            if not result.ok:
                return 0
            return int(result.text.strip())

        return Deferred(work, "upload_count")

    def get_wikidata_edits(self, user_name: str) -> Deferred[int]:
        url = self._toolforge("/wikidataedits.py")
        params: Params = [("user", user_name)]

        def work() -> int:
            result = self._execute(url, params, "wikidata_edits")
            if not result.ok:
                return 0
            return WikidataEditCountResponse.from_dict(result.json()).wikidata_edit_count

        return Deferred(work, "wikidata_edits")

    def get_achievements(self, user_name: str) -> Deferred[FeedbackResponse | None]:
        """Achievement statistics for ``user_name``.

        ``None`` when the request fails; an all-zero ``FeedbackResponse`` when
        the body cannot be decoded.
        """

        def work() -> FeedbackResponse | None:
            path = self.feedback_path.format(user=quote(user_name, safe=""))
            url = self._toolforge(path)
            result = self._execute(url, [("user", user_name)], "achievements")
            if not result.ok:
                return None
            logger.debug("Response for achievements is %s", result.text)
            try:
                return FeedbackResponse.from_dict(result.json())
            except (ValueError, TypeError, AttributeError) as exc:
                logger.warning("Unreadable achievements for %s: %s", user_name, exc)
                return FeedbackResponse.empty()

        return Deferred(work, "achievements")

    # --- Nearby -------------------------------------------------------------

    def get_nearby_places(self, cur: LatLng, lang: str, radius: float) -> Deferred[List[Place]]:
        """Places around ``cur`` within ``radius`` kilometres.

        The query template is read immediately, so a missing resource raises
        here rather than when the deferred runs.
        """
        query = self.build_nearby_query(cur, lang, radius)
        params: Params = [("query", query), ("format", "json")]

        def work() -> List[Place]:
            result = self._execute(self.sparql_url, params, "nearby")
            if not result.ok:
                return []
            response = NearbyResponse.from_dict(result.json())
            return [Place.from_item(item) for item in response.results.bindings]

        return Deferred(work, "nearby")

    @staticmethod
    def build_nearby_query(cur: LatLng, lang: str, radius: float) -> str:
        template = read_query("nearby_query.rq")
        return (
            template.replace("${RAD}", f"{radius:.2f}")
            .replace("${LAT}", f"{cur.latitude:.4f}")
            .replace("${LONG}", f"{cur.longitude:.4f}")
            .replace("${LANG}", lang)
        )

    # --- Campaigns ----------------------------------------------------------

    def get_campaigns(self) -> Deferred[CampaignResponse | None]:
        def work() -> CampaignResponse | None:
            result = self._execute(self.campaigns_url, [], "campaigns")
            if not result.ok:
                return None
            return CampaignResponse.from_dict(result.json())

        return Deferred(work, "campaigns")

    # --- Commons action API -------------------------------------------------

    def get_picture_of_the_day(self) -> Deferred[Media | None]:
        """Media shown on today's ``Template:Potd`` page."""
        params: Params = [
            ("action", "query"),
            ("generator", "images"),
            ("format", "json"),
            ("titles", f"Template:Potd/{get_current_date()}"),
            ("prop", "imageinfo"),
            ("iiprop", "url|extmetadata"),
        ]

        def work() -> Media | None:
            result = self._execute(self.commons_api_url, params, "picture_of_the_day")
            if not result.ok:
                return None
            response = MwQueryResponse.from_dict(result.json())
            page = response.query.first_page() if response.query else None
            return Media.from_page(page)

        return Deferred(work, "picture_of_the_day")

    def get_media_list(self, query_type: str, keyword: str) -> Deferred[List[Media]]:
        """Next page of media for a search (``query_type == "search"``) or a category.

        The continuation returned by the server is stored under
        ``query_continue_<keyword>`` and sent with the next call for the same
        keyword. Runs for the same keyword are serialized.
        """

        def work() -> List[Media]:
            with self._continuation_lock(keyword):
                continuation = self._get_continue_values(keyword)
                page = self._fetch_media_page(
                    query_type,
                    keyword,
                    continuation,
                    on_continuation=lambda values: self._put_continue_values(keyword, values),
                )
            return page.media if page is not None else []

        return Deferred(work, "media_list")

    def query_media_page(
        self,
        query_type: str,
        keyword: str,
        continuation: Mapping[str, str] | None = None,
    ) -> Deferred[MediaPage]:
        """Like :meth:`get_media_list` with the continuation passed explicitly.

        Nothing is stored. On failure the given continuation is handed back
        unchanged so the caller can resume from the same point.
        """
        start = dict(continuation or {})

        def work() -> MediaPage:
            page = self._fetch_media_page(query_type, keyword, start)
            if page is None:
                return MediaPage(media=[], continuation=dict(start))
            return page

        return Deferred(work, "media_page")

    def clear_continuation(self, keyword: str) -> None:
        """Forget the stored continuation so the next listing starts over."""
        with self._continuation_lock(keyword):
            self._kv_store.remove(self._continue_key(keyword))

    def get_recent_file_changes(self) -> Deferred[List[RecentChange]]:
        """Recent new files, starting from a random point in the last 30 days."""
        start_date = self.random_recent_start()
        params: Params = [
            ("action", "query"),
            ("format", "json"),
            ("list", "recentchanges"),
            ("rcstart", format_mw_date(start_date)),
            ("rcnamespace", FILE_NAMESPACE),
            ("rcprop", "title|ids"),
            ("rctype", "new|log"),
            ("rctoponly", "1"),
        ]

        def work() -> List[RecentChange]:
            result = self._execute(self.commons_api_url, params, "recent_changes")
            if not result.ok:
                return []
            response = MwQueryResponse.from_dict(result.json())
            if response.query is None:
                return []
            return response.query.recentchanges

        return Deferred(work, "recent_changes")

    def random_recent_start(self) -> datetime:
        offset = self._rng.randrange(commons_settings.RECENT_CHANGES_WINDOW_SEC)
        return _utcnow() - timedelta(seconds=offset)

    def get_first_revision_of_file(self, filename: str) -> Deferred[Revision | None]:
        """Oldest revision of ``filename``.

        The answer is expected to hold at least one revision; an empty one
        raises ``IndexError``.
        """
        params: Params = [
            ("action", "query"),
            ("format", "json"),
            ("prop", "revisions"),
            ("rvprop", "timestamp|ids|user"),
            ("titles", filename),
            ("rvdir", "newer"),
            ("rvlimit", "1"),
        ]

        def work() -> Revision | None:
            result = self._execute(self.commons_api_url, params, "first_revision")
            if not result.ok:
                return None
            response = MwQueryResponse.from_dict(result.json())
            pages = response.query.pages if response.query else []
            return pages[0].revisions[0]

        return Deferred(work, "first_revision")

    def fetch(self, url: str, params: Sequence[Tuple[str, str]] | None = None) -> Deferred[HttpResult]:
        """Raw GET returning the tagged :class:`HttpResult` instead of a neutral value."""
        request_params: Params = list(params or [])
        return Deferred(lambda: self._execute(url, request_params, "fetch"), "fetch")

    # --- Internal helpers -------------------------------------------------

    def _toolforge(self, path: str) -> str:
        return f"{self.toolforge_url}/{path.lstrip('/')}"

    def _execute(self, url: str, params: Params, label: str) -> HttpResult:
        start = time.perf_counter()
        try:
            response = self._session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            elapsed = (time.perf_counter() - start) * 1000
            logger.warning("GET %s | %s | %.0f ms | failed: %s", url, label, elapsed, exc)
            return HttpResult(ok=False, error=str(exc), elapsed_ms=elapsed)
        elapsed = (time.perf_counter() - start) * 1000
        try:
            status = response.status_code
            logger.info("GET %s | %s | %.0f ms | %s", url, label, elapsed, status)
            if not 200 <= status < 300:
                return HttpResult(ok=False, status_code=status, error=f"http_{status}", elapsed_ms=elapsed)
            return HttpResult(ok=True, status_code=status, text=response.text, elapsed_ms=elapsed)
        finally:
            response.close()

    def _fetch_media_page(
        self,
        query_type: str,
        keyword: str,
        continuation: Mapping[str, str],
        on_continuation: Callable[[Dict[str, str]], None] | None = None,
    ) -> MediaPage | None:
        params = self.build_media_params(query_type, keyword, continuation)
        result = self._execute(self.commons_api_url, params, f"media_list:{query_type}")
        if not result.ok:
            return None
        response = MwQueryResponse.from_dict(result.json())
        if on_continuation is not None:
            on_continuation(response.continuation)
        media: List[Media] = []
        if response.query is None:
            return MediaPage(media=media, continuation=response.continuation)
        for page in response.query.pages:
            item = Media.from_page(page)
            if item is not None:
                media.append(item)
        return MediaPage(media=media, continuation=response.continuation)

    def build_media_params(
        self, query_type: str, keyword: str, continuation: Mapping[str, str] | None = None
    ) -> Params:
        params: Params = [("action", "query"), ("format", "json")]
        if query_type == "search":
            params.extend(self._search_params(keyword))
        else:
            params.extend(self._category_params(keyword))
        params.extend((str(k), str(v)) for k, v in (continuation or {}).items())
        params.extend(self._media_properties())
        return params

    @staticmethod
    def _media_properties() -> Params:
        # https://www.mediawiki.org/wiki/API:Imageinfo
        params: Params = [
            ("prop", "imageinfo"),
            ("iiprop", "url|extmetadata"),
            ("iiextmetadatafilter", EXTMETADATA_FILTER),
        ]
        language = commons_settings.metadata_language()
        if language.strip():
            params.append(("iiextmetadatalanguage", language))
        return params

    @staticmethod
    def _search_params(query: str) -> Params:
        return [
            ("generator", "search"),
            ("gsrwhat", "text"),
            ("gsrnamespace", FILE_NAMESPACE),
            ("gsrlimit", SEARCH_LIMIT),
            ("gsrsearch", query),
        ]

    @staticmethod
    def _category_params(category_name: str) -> Params:
        return [
            ("generator", "categorymembers"),
            ("gcmtype", "file"),
            ("gcmtitle", category_name),
            ("gcmsort", "timestamp"),
            ("gcmdir", "desc"),
            ("gcmlimit", CATEGORY_LIMIT),
        ]

    @staticmethod
    def _continue_key(keyword: str) -> str:
        return f"{commons_settings.QUERY_CONTINUE_PREFIX}{keyword}"

    def _get_continue_values(self, keyword: str) -> Dict[str, str]:
        values = self._kv_store.get_json(self._continue_key(keyword))
        if not isinstance(values, dict):
            return {}
        return {str(k): str(v) for k, v in values.items()}

    def _put_continue_values(self, keyword: str, values: Dict[str, str]) -> None:
        self._kv_store.put_json(self._continue_key(keyword), values)

    @contextmanager
    def _continuation_lock(self, keyword: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(keyword, threading.Lock())
        with lock:
            yield


__all__ = ["CommonsApiClient", "HttpResult", "read_query"]
