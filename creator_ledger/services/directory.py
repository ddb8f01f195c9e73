from __future__ import annotations

from typing import Any, Dict, Optional

from creator_ledger.core.errors import UnsupportedContentType
from creator_ledger.services.ledger_store import strip_keys


class VideoDirectory:
    """Read-only view of the video catalog, used to find who gets paid for a tip."""

    # Shorts and live streams are catalogued elsewhere and are not tippable yet.
    TIPPABLE = ("video",)

    def __init__(self, table: Any) -> None:
        self.table = table

    def owner_of(self, content_type: str, content_id: str) -> Optional[str]:
        if content_type not in self.TIPPABLE:
            raise UnsupportedContentType(
                f"Content type '{content_type}' is not yet supported",
                content_type=content_type,
            )
        resp = self.table.get_item(Key={"video_id": content_id})
        video = resp.get("Item")
        if not video:
            return None
        owner = video.get("user_id")
        return str(owner) if owner else None


class UserDirectory:
    def __init__(self, table: Any) -> None:
        self.table = table

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        resp = self.table.get_item(Key={"user_id": user_id})
        return strip_keys(resp.get("Item"))
