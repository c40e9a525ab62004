from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest
import requests

from commons_config import commons_settings
from commons_services import commons_client
from commons_services.commons_client import CommonsApiClient
from commons_services.date_utils import parse_mw_date
from commons_services.kv_store import JsonKvStore
from commons_services.models import FeaturedImages, FeedbackResponse, LatLng


class FakeResponse:
    def __init__(self, payload: Any = None, status: int = 200, text: str | None = None) -> None:
        self.status_code = status
        self.text = text if text is not None else json.dumps(payload)
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeSession:
    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.calls: List[Tuple[str, List[Tuple[str, str]]]] = []

    def get(self, url: str, params: Any = None, timeout: float | None = None) -> FakeResponse:
        self.calls.append((url, list(params or [])))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def make_client(tmp_path: Path):
    def factory(*responses: Any) -> Tuple[CommonsApiClient, FakeSession]:
        session = FakeSession(*responses)
        client = CommonsApiClient(
            session=session,
            kv_store=JsonKvStore(tmp_path / "kv"),
            toolforge_url="https://tools.example.org/commonsmisc/",
            sparql_url="https://query.example.org/sparql",
            campaigns_url="https://campaigns.example.org/campaigns.json",
            commons_api_url="https://commons.example.org/w/api.php",
        )
        return client, session

    return factory


def test_deferred_does_no_io_until_run(make_client) -> None:
    client, session = make_client(FakeResponse(text="12"))
    deferred = client.get_upload_count("Alice")
    assert session.calls == []
    assert deferred.run() == 12
    assert len(session.calls) == 1


def test_upload_count_parses_trimmed_body(make_client) -> None:
    client, session = make_client(FakeResponse(text="  42\n"))
    assert client.get_upload_count("Alice").run() == 42
    url, params = session.calls[0]
    assert url == "https://tools.example.org/commonsmisc/uploadsbyuser.py"
    assert params == [("user", "Alice")]


def test_upload_count_non_numeric_body_raises(make_client) -> None:
    client, _ = make_client(FakeResponse(text="oops"))
    with pytest.raises(ValueError):
        client.get_upload_count("Alice").run()


@pytest.mark.parametrize(
    "outcome",
    [FakeResponse(text="", status=500), requests.ConnectionError("down"), requests.Timeout("slow")],
)
def test_counts_fall_back_to_zero(make_client, outcome: Any) -> None:
    client, _ = make_client(outcome)
    assert client.get_upload_count("Alice").run() == 0
    client, _ = make_client(outcome)
    assert client.get_wikidata_edits("Alice").run() == 0


def test_wikidata_edits(make_client) -> None:
    client, session = make_client(FakeResponse({"edits": 314}))
    assert client.get_wikidata_edits("Bob").run() == 314
    assert session.calls[0][0].endswith("/wikidataedits.py")


def test_wikidata_edits_non_numeric_count_raises(make_client) -> None:
    client, _ = make_client(FakeResponse({"edits": "abc"}))
    with pytest.raises(ValueError):
        client.get_wikidata_edits("Bob").run()


def test_wikidata_edits_invalid_json_raises(make_client) -> None:
    client, _ = make_client(FakeResponse(text="<html>"))
    with pytest.raises(ValueError):
        client.get_wikidata_edits("Bob").run()


def test_achievements_parsed(make_client) -> None:
    payload = {
        "status": "ok",
        "uniqueUsedImages": 3,
        "articlesUsingImages": 7,
        "thanksReceived": 2,
        "featuredImages": {"Quality_images": 1, "Featured_pictures": 4},
        "deletedUploads": 0,
        "user": "Alice",
        "imagesEditedBySomeoneElse": 5,
    }
    client, session = make_client(FakeResponse(payload))
    feedback = client.get_achievements("Alice").run()
    assert feedback is not None
    assert feedback.articles_using_images == 7
    assert feedback.featured_images == FeaturedImages(quality_images=1, featured_pictures=4)
    assert feedback.images_edited_by_someone_else == 5
    url, params = session.calls[0]
    assert url == "https://tools.example.org/commonsmisc/feedback.py"
    assert params == [("user", "Alice")]


def test_achievements_unreadable_body_gives_fallback(make_client) -> None:
    client, _ = make_client(FakeResponse(text="not json"))
    feedback = client.get_achievements("Alice").run()
    assert feedback == FeedbackResponse("", 0, 0, 0, FeaturedImages(0, 0), 0, "", 0)


def test_achievements_http_failure_gives_none(make_client) -> None:
    client, _ = make_client(FakeResponse(text="", status=404))
    assert client.get_achievements("Alice").run() is None


def test_achievements_path_template_escapes_user(make_client) -> None:
    client, session = make_client(FakeResponse({}))
    client.feedback_path = "/feedback/{user}.py"
    client.get_achievements("Jane Doe/x").run()
    assert session.calls[0][0] == "https://tools.example.org/commonsmisc/feedback/Jane%20Doe%2Fx.py"


def test_nearby_query_substitution() -> None:
    query = CommonsApiClient.build_nearby_query(LatLng(48.858370, 2.294481), "fr", 1.5)
    assert "Point(2.2945 48.8584)" in query
    assert '"1.50"' in query
    assert "https://fr.wikipedia.org/" in query
    assert "${" not in query


def test_nearby_places(make_client) -> None:
    binding = {
        "item": {"type": "uri", "value": "http://www.wikidata.org/entity/Q243"},
        "label": {"type": "literal", "value": "Tour Eiffel"},
        "description": {"type": "literal", "value": "tour en fer"},
        "classLabel": {"type": "literal", "value": "tour"},
        "location": {"type": "literal", "value": "Point(2.2945 48.8584)"},
        "pic": {"type": "uri", "value": "http://commons.wikimedia.org/wiki/Special:FilePath/Tour%20Eiffel.jpg"},
        "commonsCategory": {"type": "literal", "value": "Eiffel Tower"},
    }
    client, session = make_client(FakeResponse({"results": {"bindings": [binding, {}]}}))
    places = client.get_nearby_places(LatLng(48.85, 2.29), "fr", 1.0).run()
    assert len(places) == 2
    eiffel = places[0]
    assert eiffel.name == "Tour Eiffel"
    assert eiffel.location == LatLng(latitude=48.8584, longitude=2.2945)
    assert eiffel.wikidata_id == "Q243"
    assert eiffel.pic == "Tour%20Eiffel.jpg"
    assert eiffel.has_picture
    assert not places[1].has_picture
    assert places[1].location is None
    url, params = session.calls[0]
    assert url == "https://query.example.org/sparql"
    assert params[1] == ("format", "json")
    assert params[0][0] == "query"


def test_nearby_places_failure_is_empty(make_client) -> None:
    client, _ = make_client(requests.ConnectionError("down"))
    assert client.get_nearby_places(LatLng(0.0, 0.0), "en", 1.0).run() == []


def test_campaigns(make_client) -> None:
    payload = {
        "config": {"showOnlyLiveCampaigns": True, "sortBy": "startDate"},
        "campaigns": [
            {
                "title": "Wiki Loves Earth",
                "description": "Nature",
                "startDate": "2024-05-01",
                "endDate": "2024-05-31",
                "link": "https://commons.wikimedia.org/wiki/Commons:WLE",
            }
        ],
    }
    client, session = make_client(FakeResponse(payload))
    response = client.get_campaigns().run()
    assert response is not None
    assert response.config.show_only_live_campaigns is True
    assert response.campaigns[0].title == "Wiki Loves Earth"
    assert session.calls[0] == ("https://campaigns.example.org/campaigns.json", [])


def test_campaigns_failure_is_none(make_client) -> None:
    client, _ = make_client(FakeResponse(text="", status=503))
    assert client.get_campaigns().run() is None


def test_picture_of_the_day(make_client, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(commons_client, "get_current_date", lambda: "2024-05-01")
    payload = {
        "query": {
            "pages": {
                "123": {
                    "pageid": 123,
                    "ns": 6,
                    "title": "File:Sunset.jpg",
                    "imageinfo": [
                        {
                            "url": "https://upload.example.org/Sunset.jpg",
                            "descriptionurl": "https://commons.example.org/wiki/File:Sunset.jpg",
                            "extmetadata": {
                                "Artist": {"value": "<a href='x'>Jane</a>"},
                                "LicenseShortName": {"value": "CC BY-SA 4.0"},
                            },
                        }
                    ],
                }
            }
        }
    }
    client, session = make_client(FakeResponse(payload))
    media = client.get_picture_of_the_day().run()
    assert media is not None
    assert media.filename == "File:Sunset.jpg"
    assert media.creator == "Jane"
    assert media.license == "CC BY-SA 4.0"
    _, params = session.calls[0]
    assert ("titles", "Template:Potd/2024-05-01") in params
    assert ("generator", "images") in params
    assert ("iiprop", "url|extmetadata") in params


def test_picture_of_the_day_failure_is_none(make_client) -> None:
    client, _ = make_client(requests.ConnectionError("down"))
    assert client.get_picture_of_the_day().run() is None


def test_recent_file_changes(make_client) -> None:
    payload = {
        "query": {
            "recentchanges": [
                {"type": "new", "ns": 6, "title": "File:A.jpg", "pageid": 1, "revid": 10, "old_revid": 0, "rcid": 99},
            ]
        }
    }
    client, session = make_client(FakeResponse(payload))
    changes = client.get_recent_file_changes().run()
    assert [change.title for change in changes] == ["File:A.jpg"]
    params = dict(session.calls[0][1])
    assert params["list"] == "recentchanges"
    assert params["rcnamespace"] == "6"
    assert params["rctoponly"] == "1"
    assert params["rctype"] == "new|log"


def test_recent_file_changes_failure_is_empty(make_client) -> None:
    client, _ = make_client(FakeResponse(text="", status=500))
    assert client.get_recent_file_changes().run() == []


def test_recent_changes_start_within_window(make_client, monkeypatch: pytest.MonkeyPatch) -> None:
    now = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
    monkeypatch.setattr(commons_client, "_utcnow", lambda: now)
    client, _ = make_client()
    window = timedelta(seconds=commons_settings.RECENT_CHANGES_WINDOW_SEC)
    starts = [client.random_recent_start() for _ in range(500)]
    assert all(now - window < start <= now for start in starts)
    # spread over the whole window rather than clustered
    assert min(starts) < now - window * 0.8
    assert max(starts) > now - window * 0.2


def test_recent_changes_rcstart_formatted(make_client, monkeypatch: pytest.MonkeyPatch) -> None:
    now = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
    monkeypatch.setattr(commons_client, "_utcnow", lambda: now)
    client, session = make_client(FakeResponse({"query": {"recentchanges": []}}))
    client.get_recent_file_changes().run()
    rcstart = parse_mw_date(dict(session.calls[0][1])["rcstart"])
    assert now - timedelta(days=30) < rcstart <= now


def test_first_revision_of_file(make_client) -> None:
    payload = {
        "query": {
            "pages": [
                {
                    "pageid": 5,
                    "title": "File:A.jpg",
                    "revisions": [{"revid": 77, "parentid": 0, "user": "Alice", "timestamp": "2020-01-01T00:00:00Z"}],
                }
            ]
        }
    }
    client, session = make_client(FakeResponse(payload))
    revision = client.get_first_revision_of_file("File:A.jpg").run()
    assert revision is not None
    assert revision.revid == 77
    assert revision.user == "Alice"
    params = dict(session.calls[0][1])
    assert params["rvdir"] == "newer"
    assert params["rvlimit"] == "1"
    assert params["titles"] == "File:A.jpg"


def test_first_revision_without_revisions_raises(make_client) -> None:
    client, _ = make_client(FakeResponse({"query": {"pages": [{"pageid": 5, "title": "File:A.jpg"}]}}))
    with pytest.raises(IndexError):
        client.get_first_revision_of_file("File:A.jpg").run()


def test_first_revision_with_garbage_revid_raises(make_client) -> None:
    payload = {"query": {"pages": [{"pageid": 5, "title": "File:A.jpg", "revisions": [{"revid": "garbage", "user": "A"}]}]}}
    client, _ = make_client(FakeResponse(payload))
    with pytest.raises(ValueError):
        client.get_first_revision_of_file("File:A.jpg").run()


def test_first_revision_failure_is_none(make_client) -> None:
    client, _ = make_client(FakeResponse(text="", status=500))
    assert client.get_first_revision_of_file("File:A.jpg").run() is None


def test_fetch_reports_failure(make_client) -> None:
    client, _ = make_client(FakeResponse(text="nope", status=404), requests.ConnectionError("down"))
    first = client.fetch("https://commons.example.org/w/api.php").run()
    assert not first.ok
    assert first.status_code == 404
    second = client.fetch("https://commons.example.org/w/api.php").run()
    assert not second.ok
    assert "down" in (second.error or "")


def test_response_closed_after_call(make_client) -> None:
    response = FakeResponse(text="1")
    client, _ = make_client(response)
    client.get_upload_count("Alice").run()
    assert response.closed
