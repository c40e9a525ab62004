"""Services for the Wikimedia Commons API client."""
from .commons_client import CommonsApiClient, HttpResult
from .deferred import Deferred
from .kv_store import JsonKvStore
from .models import (
    CampaignResponse,
    FeedbackResponse,
    LatLng,
    Media,
    MediaPage,
    Place,
    RecentChange,
    Revision,
)

__all__ = [
    "CommonsApiClient",
    "HttpResult",
    "Deferred",
    "JsonKvStore",
    "CampaignResponse",
    "FeedbackResponse",
    "LatLng",
    "Media",
    "MediaPage",
    "Place",
    "RecentChange",
    "Revision",
]
