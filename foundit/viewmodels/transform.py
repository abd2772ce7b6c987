"""
Client-side view transform over a live record list.

``apply_view`` is pure: same records and view in, same list out, element
order included. Stages run in a fixed order and each one narrows the output
of the previous stage:

1. segment (lost / found / all)
2. search text (case-insensitive substring over title, description,
   location and, in feed context, the author name)
3. resolved visibility
4. sort (title A to Z, or newest first with missing timestamps as oldest)

Both sorts are stable, so records with equal keys keep their input order.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from foundit.models.chat import Chat
from foundit.models.post import Post
from foundit.utils.formatting import epoch_millis


class Segment(str, Enum):
    all = "all"
    lost = "lost"
    found = "found"


class SortKey(str, Enum):
    latest = "latest"
    alpha = "alpha"


class StatusFilter(str, Enum):
    all = "all"
    active = "active"
    resolved = "resolved"


class ChatFilter(str, Enum):
    all = "all"
    open = "open"
    resolved = "resolved"


@dataclass(frozen=True)
class FeedView:
    segment: Segment = Segment.all
    search: str = ""
    sort: SortKey = SortKey.latest
    show_resolved: bool = False
    match_author: bool = True


def _kind(post: Post) -> str:
    return getattr(post.kind, "value", post.kind)


def _by_segment(records: Sequence[Post], segment: Segment) -> list[Post]:
    if segment == Segment.all:
        return list(records)
    return [p for p in records if _kind(p) == segment.value]


def _by_text(records: Sequence[Post], search: str, match_author: bool) -> list[Post]:
    needle = (search or "").strip().casefold()
    if not needle:
        return list(records)

    def matches(post: Post) -> bool:
        fields = [post.title, post.description, post.location]
        if match_author:
            fields.append(post.author_name)
        return any(needle in (value or "").casefold() for value in fields)

    return [p for p in records if matches(p)]


def _by_resolved(records: Sequence[Post], show_resolved: bool) -> list[Post]:
    if show_resolved:
        return list(records)
    return [p for p in records if not p.resolved]


def _sorted(records: Sequence[Post], sort: SortKey) -> list[Post]:
    if sort == SortKey.alpha:
        return sorted(records, key=lambda p: (p.title or "").casefold())
    # reverse=True keeps equal keys in input order
    return sorted(records, key=lambda p: epoch_millis(p.created_at), reverse=True)


def apply_view(records: Sequence[Post], view: FeedView) -> list[Post]:
    result = _by_segment(records, view.segment)
    result = _by_text(result, view.search, view.match_author)
    result = _by_resolved(result, view.show_resolved)
    return _sorted(result, view.sort)


class ViewTransform:
    """
    Memoized ``apply_view``.

    Live collections replace their list on every snapshot, so list identity
    plus the view value is a sufficient cache key.
    """

    def __init__(self):
        self._records: Optional[Sequence[Post]] = None
        self._view: Optional[FeedView] = None
        self._result: list[Post] = []
        self._lock = threading.Lock()

    def __call__(self, records: Sequence[Post], view: FeedView) -> list[Post]:
        with self._lock:
            if records is self._records and view == self._view:
                return list(self._result)

            self._result = apply_view(records, view)
            self._records = records
            self._view = view
            return list(self._result)


def segment_counts(records: Sequence[Post]) -> dict[str, int]:
    lost = sum(1 for p in records if _kind(p) == Segment.lost.value)
    found = sum(1 for p in records if _kind(p) == Segment.found.value)
    return {"all": len(records), "lost": lost, "found": found}


def filter_by_status(records: Sequence[Post], status: StatusFilter) -> list[Post]:
    if status == StatusFilter.active:
        return [p for p in records if not p.resolved]
    if status == StatusFilter.resolved:
        return [p for p in records if p.resolved]
    return list(records)


def status_counts(records: Sequence[Post]) -> dict[str, int]:
    resolved = sum(1 for p in records if p.resolved)
    return {"all": len(records), "active": len(records) - resolved, "resolved": resolved}


def filter_chats(chats: Sequence[Chat], chat_filter: ChatFilter) -> list[Chat]:
    if chat_filter == ChatFilter.open:
        return [c for c in chats if not c.resolved]
    if chat_filter == ChatFilter.resolved:
        return [c for c in chats if c.resolved]
    return list(chats)
