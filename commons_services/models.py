"""Response DTOs and domain models for the Commons services."""
from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

_TAG_RE = re.compile(r"<[^>]+>")
_POINT_RE = re.compile(r"Point\(\s*(-?[\d.]+)\s+(-?[\d.]+)\s*\)", re.IGNORECASE)


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _strict_int(value: Any) -> int:
    """Missing or null is 0; anything else must be an integer."""
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"Expected an integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"Expected an integer, got {value!r}")
    return int(value)


def _as_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _strip_html(value: str) -> str:
    return _TAG_RE.sub("", value).strip()


def _page_index(page: Any) -> int:
    return _strict_int(page.get("index")) if isinstance(page, dict) else 0


# --- Statistics service ---------------------------------------------------


@dataclass(slots=True)
class WikidataEditCountResponse:
    wikidata_edit_count: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WikidataEditCountResponse":
        count = data.get("edits", data.get("wikidataEditCount", 0))
        return cls(wikidata_edit_count=_strict_int(count))


@dataclass(slots=True)
class FeaturedImages:
    quality_images: int
    featured_pictures: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "FeaturedImages":
        data = data or {}
        return cls(
            quality_images=_as_int(data.get("Quality_images")),
            featured_pictures=_as_int(data.get("Featured_pictures")),
        )


@dataclass(slots=True)
class FeedbackResponse:
    """Achievement statistics of a user."""

    status: str
    unique_used_images: int
    articles_using_images: int
    thanks_received: int
    featured_images: FeaturedImages
    deleted_uploads: int
    user: str
    images_edited_by_someone_else: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedbackResponse":
        if not isinstance(data, dict):
            raise ValueError("Feedback payload is not an object")
        return cls(
            status=str(data.get("status", "")),
            unique_used_images=_as_int(data.get("uniqueUsedImages")),
            articles_using_images=_as_int(data.get("articlesUsingImages")),
            thanks_received=_as_int(data.get("thanksReceived")),
            featured_images=FeaturedImages.from_dict(data.get("featuredImages")),
            deleted_uploads=_as_int(data.get("deletedUploads")),
            user=str(data.get("user", "")),
            images_edited_by_someone_else=_as_int(data.get("imagesEditedBySomeoneElse")),
        )

    @classmethod
    def empty(cls) -> "FeedbackResponse":
        return cls("", 0, 0, 0, FeaturedImages(0, 0), 0, "", 0)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# --- Nearby (SPARQL) ------------------------------------------------------


@dataclass(slots=True)
class LatLng:
    latitude: float
    longitude: float

    @classmethod
    def from_wkt(cls, value: str) -> "LatLng | None":
        """Parse a ``Point(long lat)`` literal."""
        match = _POINT_RE.search(value or "")
        if not match:
            return None
        return cls(latitude=float(match.group(2)), longitude=float(match.group(1)))


@dataclass(slots=True)
class NearbyResultItem:
    """One SPARQL binding: variable name -> ``{"type": ..., "value": ...}``."""

    values: Dict[str, Dict[str, Any]]

    def value(self, name: str) -> str:
        entry = self.values.get(name) or {}
        return str(entry.get("value", ""))


@dataclass(slots=True)
class NearbyResults:
    bindings: List[NearbyResultItem]


@dataclass(slots=True)
class NearbyResponse:
    results: NearbyResults

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NearbyResponse":
        results = data.get("results") or {}
        bindings = [NearbyResultItem(values=item) for item in results.get("bindings", [])]
        return cls(results=NearbyResults(bindings=bindings))


@dataclass(slots=True)
class Sitelinks:
    wikipedia_link: str
    commons_link: str
    wikidata_link: str


@dataclass(slots=True)
class Place:
    name: str
    long_description: str
    class_label: str
    location: LatLng | None
    category: str
    sitelinks: Sitelinks
    pic: str
    destroyed: str

    @property
    def wikidata_id(self) -> str:
        return self.sitelinks.wikidata_link.rsplit("/", 1)[-1]

    @property
    def has_picture(self) -> bool:
        return bool(self.pic)

    @classmethod
    def from_item(cls, item: NearbyResultItem) -> "Place":
        pic = item.value("pic")
        if pic:
            # Special:FilePath URL -> bare file name
            pic = pic.rsplit("/", 1)[-1]
        return cls(
            name=item.value("label"),
            long_description=item.value("description"),
            class_label=item.value("classLabel"),
            location=LatLng.from_wkt(item.value("location")),
            category=item.value("commonsCategory"),
            sitelinks=Sitelinks(
                wikipedia_link=item.value("wikipediaArticle"),
                commons_link=item.value("commonsArticle"),
                wikidata_link=item.value("item"),
            ),
            pic=pic,
            destroyed=item.value("destroyed"),
        )


# --- Campaigns -----------------------------------------------------------


@dataclass(slots=True)
class Campaign:
    title: str
    description: str
    start_date: str
    end_date: str
    link: str
    is_wlm_campaign: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Campaign":
        return cls(
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            start_date=str(data.get("startDate", "")),
            end_date=str(data.get("endDate", "")),
            link=str(data.get("link", "")),
            is_wlm_campaign=bool(data.get("isWLMCampaign", False)),
        )


@dataclass(slots=True)
class CampaignConfig:
    show_only_live_campaigns: bool
    sort_by: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "CampaignConfig":
        data = data or {}
        return cls(
            show_only_live_campaigns=bool(data.get("showOnlyLiveCampaigns", False)),
            sort_by=str(data.get("sortBy", "")),
        )


@dataclass(slots=True)
class CampaignResponse:
    config: CampaignConfig
    campaigns: List[Campaign]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CampaignResponse":
        return cls(
            config=CampaignConfig.from_dict(data.get("config")),
            campaigns=[Campaign.from_dict(item) for item in data.get("campaigns") or []],
        )


# --- MediaWiki action API -------------------------------------------------


@dataclass(slots=True)
class Revision:
    revid: int
    parentid: int
    user: str
    timestamp: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Revision":
        return cls(
            revid=_strict_int(data.get("revid")),
            parentid=_strict_int(data.get("parentid")),
            user=str(data.get("user", "")),
            timestamp=str(data.get("timestamp", "")),
        )


@dataclass(slots=True)
class ImageInfo:
    url: str
    thumb_url: str
    description_url: str
    extmetadata: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def metadata(self, name: str) -> str:
        entry = self.extmetadata.get(name) or {}
        value = entry.get("value", "")
        return value if isinstance(value, str) else str(value)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageInfo":
        return cls(
            url=str(data.get("url", "")),
            thumb_url=str(data.get("thumburl") or data.get("url") or ""),
            description_url=str(data.get("descriptionurl", "")),
            extmetadata=data.get("extmetadata") or {},
        )


@dataclass(slots=True)
class MwQueryPage:
    pageid: int
    ns: int
    title: str
    imageinfo: List[ImageInfo] = field(default_factory=list)
    revisions: List[Revision] = field(default_factory=list)

    def image_info(self) -> ImageInfo | None:
        return self.imageinfo[0] if self.imageinfo else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MwQueryPage":
        return cls(
            pageid=_strict_int(data.get("pageid")),
            ns=_strict_int(data.get("ns")),
            title=str(data.get("title", "")),
            imageinfo=[ImageInfo.from_dict(info) for info in data.get("imageinfo") or []],
            revisions=[Revision.from_dict(rev) for rev in data.get("revisions") or []],
        )


@dataclass(slots=True)
class RecentChange:
    type: str
    ns: int
    title: str
    pageid: int
    revid: int
    old_revid: int
    rcid: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecentChange":
        return cls(
            type=str(data.get("type", "")),
            ns=_strict_int(data.get("ns")),
            title=str(data.get("title", "")),
            pageid=_strict_int(data.get("pageid")),
            revid=_strict_int(data.get("revid")),
            old_revid=_strict_int(data.get("old_revid")),
            rcid=_strict_int(data.get("rcid")),
        )


@dataclass(slots=True)
class MwQueryResult:
    pages: List[MwQueryPage] = field(default_factory=list)
    recentchanges: List[RecentChange] = field(default_factory=list)

    def first_page(self) -> MwQueryPage | None:
        return self.pages[0] if self.pages else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MwQueryResult":
        raw_pages = data.get("pages") or []
        # legacy format keys pages by id, formatversion=2 returns a list
        if isinstance(raw_pages, dict):
            raw_pages = list(raw_pages.values())
        # generator answers carry the requested order in "index"
        if any(isinstance(page, dict) and "index" in page for page in raw_pages):
            raw_pages = sorted(raw_pages, key=_page_index)
        return cls(
            pages=[MwQueryPage.from_dict(page) for page in raw_pages],
            recentchanges=[RecentChange.from_dict(rc) for rc in data.get("recentchanges") or []],
        )


@dataclass(slots=True)
class MwQueryResponse:
    continuation: Dict[str, str]
    query: MwQueryResult | None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MwQueryResponse":
        if not isinstance(data, dict):
            raise ValueError("MediaWiki payload is not an object")
        raw_continue = data.get("continue") or {}
        query = data.get("query")
        return cls(
            continuation={str(k): str(v) for k, v in raw_continue.items()},
            query=MwQueryResult.from_dict(query) if isinstance(query, dict) else None,
        )


# --- Domain media ---------------------------------------------------------


@dataclass(slots=True)
class Media:
    filename: str
    image_url: str
    thumb_url: str
    description_url: str
    description: str
    creator: str
    license: str
    date_created: str
    categories: List[str]
    coordinates: LatLng | None

    @classmethod
    def from_page(cls, page: MwQueryPage | None) -> "Media | None":
        """Build a ``Media`` from a query page, ``None`` when it has no image info."""
        if page is None:
            return None
        info = page.image_info()
        if info is None:
            return None
        categories = [c for c in info.metadata("Categories").split("|") if c]
        lat = _as_float(info.metadata("GPSLatitude"))
        lon = _as_float(info.metadata("GPSLongitude"))
        return cls(
            filename=page.title,
            image_url=info.url,
            thumb_url=info.thumb_url,
            description_url=info.description_url,
            description=_strip_html(info.metadata("ImageDescription")),
            creator=_strip_html(info.metadata("Artist")),
            license=info.metadata("LicenseShortName"),
            date_created=info.metadata("DateTimeOriginal") or info.metadata("DateTime"),
            categories=categories,
            coordinates=LatLng(lat, lon) if lat is not None and lon is not None else None,
        )


@dataclass(slots=True)
class MediaPage:
    """One page of media results plus the continuation to fetch the next one."""

    media: List[Media]
    continuation: Dict[str, str]

    @property
    def has_more(self) -> bool:
        return bool(self.continuation)


__all__ = [
    "Campaign",
    "CampaignConfig",
    "CampaignResponse",
    "FeaturedImages",
    "FeedbackResponse",
    "ImageInfo",
    "LatLng",
    "Media",
    "MediaPage",
    "MwQueryPage",
    "MwQueryResponse",
    "MwQueryResult",
    "NearbyResponse",
    "NearbyResultItem",
    "NearbyResults",
    "Place",
    "RecentChange",
    "Revision",
    "Sitelinks",
    "WikidataEditCountResponse",
]
