"""
Resolve cascade: mirror a post's resolved flag onto every chat about it.

Jobs are keyed by post id and carry the target flag, so re-running a job
is harmless and a newer toggle simply replaces the queued one. A job stays
queued until every chat update has gone through; the app drains the queue
periodically. Failures are logged only: they never roll back the post
update and never reach the user.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from foundit.models.chat import CHATS_COLLECTION
from foundit.services.documents import SERVER_TIMESTAMP, DocumentStore, Query

logger = logging.getLogger(__name__)


@dataclass
class CascadeJob:
    post_id: str
    resolved: bool
    attempts: int = 0
    last_error: Optional[str] = None
    queued_at: Optional[datetime] = None

    def __post_init__(self):
        if self.queued_at is None:
            self.queued_at = datetime.now(timezone.utc)


class ResolutionCascade:
    def __init__(self, store: DocumentStore):
        self.store = store
        self._jobs: dict[str, CascadeJob] = {}
        self._lock = threading.RLock()

    def submit(self, post_id: str, resolved: bool) -> bool:
        """Queue the job for ``post_id`` (replacing any older one) and try it once."""
        with self._lock:
            self._jobs[post_id] = CascadeJob(post_id, resolved)
            return self._run(post_id)

    def drain(self) -> int:
        """Retry every queued job; returns how many are still outstanding."""
        with self._lock:
            for post_id in list(self._jobs):
                self._run(post_id)
            return len(self._jobs)

    def pending(self) -> list[CascadeJob]:
        with self._lock:
            return list(self._jobs.values())

    def _run(self, post_id: str) -> bool:
        job = self._jobs.get(post_id)
        if job is None:
            return True

        job.attempts += 1
        failures = []

        try:
            chats = self.store.get_documents(Query(CHATS_COLLECTION).where("postId", "==", post_id))
        except Exception as e:
            job.last_error = str(e)
            logger.warning("Cascade for post %s could not list chats (attempt %d): %s", post_id, job.attempts, e)
            return False

        for chat in chats:
            if bool(chat.data.get("resolved")) == job.resolved:
                continue

            try:
                self.store.update_document(
                    CHATS_COLLECTION,
                    chat.id,
                    {"resolved": job.resolved, "updatedAt": SERVER_TIMESTAMP},
                )
            except Exception as e:
                failures.append(chat.id)
                logger.warning("Cascade for post %s failed on chat %s: %s", post_id, chat.id, e)
                job.last_error = str(e)

        if failures:
            logger.warning(
                "Cascade for post %s left %d chat(s) behind (attempt %d)", post_id, len(failures), job.attempts
            )
            return False

        self._jobs.pop(post_id, None)
        return True
