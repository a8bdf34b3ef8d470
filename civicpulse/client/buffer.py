"""Client-side message buffers.

History arrives in REST pages (page 1 newest, each page oldest → newest);
live messages arrive over the socket in any interleaving with those pages.
`MessageBuffer` merges both into one list with unique ids in `createdAt`
order, whatever the arrival order.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Iterator
from datetime import datetime, timezone
from typing import Any

from civicpulse.config import settings

logger = logging.getLogger(__name__)

Message = dict[str, Any]


def _created_at(message: Message) -> datetime:
    raw = str(message.get("createdAt", ""))
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable createdAt %r on message %s", raw, message.get("id"))
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class LiveTail:
    """The most recent live messages of one issue; oldest fall off."""

    def __init__(self, maxlen: int | None = None) -> None:
        self._messages: deque[Message] = deque(maxlen=maxlen or settings.realtime.live_buffer_size)

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def snapshot(self) -> list[Message]:
        return list(self._messages)

    def clear(self) -> None:
        self._messages.clear()

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __len__(self) -> int:
        return len(self._messages)


class MessageBuffer:
    """Displayed history of one canonical issue."""

    def __init__(self, issue_id: str) -> None:
        self.issue_id = issue_id
        self.messages: list[Message] = []
        self._ids: set[str] = set()
        self.page = 0
        self.total_pages = 0

    @property
    def has_more(self) -> bool:
        return self.page < self.total_pages

    @property
    def next_page(self) -> int:
        return self.page + 1

    def load_page(self, messages: Iterable[Message], pagination: dict[str, Any]) -> int:
        """Apply a REST page. Page 1 replaces the buffer, later pages prepend.

        Returns the number of messages added.
        """
        page = int(pagination.get("page", 1))
        if page == 1:
            self.messages = []
            self._ids = set()

        older = [m for m in messages if str(m["id"]) not in self._ids]
        self._ids.update(str(m["id"]) for m in older)
        self.messages = older + self.messages
        self._sort()

        self.page = page
        self.total_pages = int(pagination.get("totalPages", page))
        return len(older)

    def add_live(self, message: Message) -> bool:
        """Merge one live message; False if its id is already shown."""
        message_id = str(message["id"])
        if message_id in self._ids:
            return False
        self._ids.add(message_id)
        self.messages.append(message)
        self._sort()
        return True

    def merge_live(self, messages: Iterable[Message]) -> int:
        return sum(1 for m in messages if self.add_live(m))

    def reset(self) -> None:
        """Forget everything; the next page 1 fetch rebuilds the buffer."""
        self.messages = []
        self._ids = set()
        self.page = 0
        self.total_pages = 0

    def ids(self) -> list[str]:
        return [str(m["id"]) for m in self.messages]

    def _sort(self) -> None:
        # stable: equal timestamps keep arrival order
        self.messages.sort(key=_created_at)

    def __len__(self) -> int:
        return len(self.messages)
