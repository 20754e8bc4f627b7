"""Side-channel persistence: background writes of action results to the store.

Writes run on one asyncio worker so a slow or failing store never delays
the response that produced the record. Failures are logged and queued as
per-session notifications for the client to pick up.
"""
import time
import asyncio
import hashlib
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional

from log import get_logger

logger = get_logger("vaani.persistence")

import store
from errors import PersistenceError
from models import ERROR_PREFIX, FeedbackRecord, FeedbackRequest, TranslationRecord, TranslationState

MAX_NOTIFICATIONS = 20
# Oldest sessions are dropped past this many tracked sessions
MAX_TRACKED_SESSIONS = 10000
FEEDBACK_COLLECTION = "feedback"


def translations_collection(uid: str) -> str:
    return f"users/{uid}/translations"


def fingerprint(source_text: str, translated_text: str, has_audio: bool) -> str:
    raw = "|".join([source_text or "", translated_text or "", "1" if has_audio else "0"])
    return hashlib.sha256(raw.encode()).hexdigest()


@dataclass
class PersistJob:
    session: str
    collection: str
    record: dict
    label: str
    fingerprint: Optional[str] = None


class PersistenceBridge:
    def __init__(self):
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._fingerprints: Dict[str, str] = OrderedDict()
        self._notifications: Dict[str, List[dict]] = OrderedDict()

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self):
        """Start the worker on the running event loop."""
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run())
        logger.info("Persistence worker started", extra={"component": "persistence"})

    async def drain(self):
        if self._queue is not None:
            await self._queue.join()

    async def stop(self):
        if self._worker is None:
            return
        await self.drain()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        self._queue = None
        logger.info("Persistence worker stopped", extra={"component": "persistence"})

    def reset(self):
        self._fingerprints.clear()
        self._notifications.clear()

    def forget(self, session: str):
        """Drop dedup and notification state for a session that has ended."""
        self._fingerprints.pop(session, None)
        self._notifications.pop(session, None)

    @staticmethod
    def _track(table: OrderedDict, session: str, value):
        table[session] = value
        table.move_to_end(session)
        while len(table) > MAX_TRACKED_SESSIONS:
            table.popitem(last=False)

    # --- Submission ---

    async def _submit(self, job: PersistJob):
        if self.running:
            self._queue.put_nowait(job)
        else:
            await self._process(job)

    async def record_translation(self, session: str, uid: str, state: TranslationState) -> bool:
        """Queue a translation for the user's history. Returns False when nothing was queued."""
        if not state.translatedText or state.translatedText.startswith(ERROR_PREFIX):
            return False
        if state.sourceText is None:
            return False

        fp = fingerprint(state.sourceText, state.translatedText, bool(state.audioData))
        if self._fingerprints.get(session) == fp:
            logger.debug("Duplicate translation skipped", extra={"component": "persistence", "session": session})
            return False
        self._track(self._fingerprints, session, fp)

        record = TranslationRecord(
            sourceText=state.sourceText,
            translatedText=state.translatedText,
            sourceLang=state.sourceLang or "",
            targetLang=state.targetLang or "",
            culturalContext=state.culturalContext,
            culturalInsights=state.culturalInsights,
            timestamp=time.time(),
        )
        await self._submit(PersistJob(
            session=session,
            collection=translations_collection(uid),
            record=record.model_dump(),
            label="translation",
            fingerprint=fp,
        ))
        return True

    async def record_feedback(self, session: str, uid: str, req: FeedbackRequest):
        record = FeedbackRecord(userId=uid, timestamp=time.time(), **req.model_dump())
        await self._submit(PersistJob(
            session=session,
            collection=FEEDBACK_COLLECTION,
            record=record.model_dump(),
            label="feedback",
        ))

    # --- Notifications ---

    def _notify(self, session: str, level: str, message: str):
        queue = self._notifications.get(session, [])
        queue.append({"level": level, "message": message, "ts": time.time()})
        self._track(self._notifications, session, queue[-MAX_NOTIFICATIONS:])

    def pop_notifications(self, session: str) -> List[dict]:
        return self._notifications.pop(session, [])

    # --- Worker ---

    async def _process(self, job: PersistJob) -> Optional[str]:
        try:
            doc_id = store.create(job.collection, job.record)
        except PersistenceError as e:
            logger.error("Background write failed", exc_info=e, extra={
                "component": "persistence", "collection": job.collection, "session": job.session,
            })
            if job.fingerprint and self._fingerprints.get(job.session) == job.fingerprint:
                del self._fingerprints[job.session]
            self._notify(job.session, "error", f"Could not save your {job.label}. Please try again.")
            return None
        logger.info("Record saved", extra={"component": "persistence", "collection": job.collection})
        return doc_id

    async def _run(self):
        while True:
            job = await self._queue.get()
            try:
                await self._process(job)
            except Exception:
                logger.exception("Persistence worker error", extra={"component": "persistence"})
            finally:
                self._queue.task_done()


bridge = PersistenceBridge()
