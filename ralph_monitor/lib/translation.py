"""
Background translation of snapshot text fields.

The rendering path calls enqueue_or_serve(): it gets the cached
translation if one exists for the current source text, otherwise the
source text itself while a job is queued. Snapshot building never waits
on the translator.

Per field:

    NoTranslation --enqueue--> Pending --batch ok--> Cached
          ^                                            |
          +------------- source text changes ----------+

Queue rules:
- one queue, ordered by (priority, insertion sequence); lower priority first
- a batch holds at most MAX_BATCH_ITEMS jobs and MAX_BATCH_CHARS source
  characters, except that the first job is always taken
- one batch in flight at a time; finishing a batch starts the next
- a job is dropped after MAX_ATTEMPTS failures and that exact content is
  not queued again
- if the translator is missing entirely the pipeline switches itself off
  for the rest of the process
- retain() drops cache entries and given-up jobs for fields that are no
  longer rendered
"""

import hashlib
import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from ralph_monitor.agents.claude import TranslationError, Translator, TranslatorUnavailable

logger = logging.getLogger(__name__)

MAX_BATCH_ITEMS = 30
MAX_BATCH_CHARS = 14000
MAX_ATTEMPTS = 2

# Reader value, most urgent first
PRIORITY_TITLE = 0
PRIORITY_DESCRIPTION = 1
PRIORITY_NOTES = 2
PRIORITY_DEFAULT = 3
PRIORITY_ACTIVITY = 4

UNAVAILABLE_MARKERS = ("ENOENT", "not found")


def content_hash(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def make_pending_id(key: str, source: str) -> str:
    """Identity of a job for dedup: field key plus hash of its content."""
    return f"{key}|{content_hash(source)}"


def is_unavailable_error(error: BaseException) -> bool:
    """True if the error means the translator isn't installed, not just failing."""
    if isinstance(error, TranslatorUnavailable):
        return True
    message = str(error)
    return any(marker in message for marker in UNAVAILABLE_MARKERS)


@dataclass
class CacheEntry:
    source: str
    translated: str


@dataclass
class TranslationJob:
    key: str
    source: str
    priority: int
    pending_id: str
    attempts: int = 0
    sequence: int = 0


@dataclass(frozen=True)
class TranslationHealth:
    """Pipeline status for display."""
    enabled: bool
    translator_available: bool
    in_flight: bool
    queued: int
    completed_batches: int
    failed_batches: int
    dropped_jobs: int
    last_error: Optional[str]


class TranslationPipeline:
    """Deduplicating, priority-ordered, batched translation worker.

    Owns its queue and cache. All mutation happens under one lock; the
    translator itself is called outside it.

    Args:
        translator: Backend implementing translate_batch()
        enabled: False makes every call a pass-through
        on_batch_complete: Called (without arguments) after each batch,
            successful or not
        autostart: Start a background worker on enqueue. Tests pass False
            and drive process_next_batch() directly.
    """

    def __init__(
        self,
        translator: Translator,
        enabled: bool = True,
        on_batch_complete: Optional[Callable[[], None]] = None,
        autostart: bool = True,
        max_batch_items: int = MAX_BATCH_ITEMS,
        max_batch_chars: int = MAX_BATCH_CHARS,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        self.translator = translator
        self.enabled = enabled
        self.on_batch_complete = on_batch_complete
        self.autostart = autostart
        self.max_batch_items = max_batch_items
        self.max_batch_chars = max_batch_chars
        self.max_attempts = max_attempts

        self._lock = threading.Lock()
        self._cache: dict[str, CacheEntry] = {}
        self._queue: list[TranslationJob] = []
        self._pending: set[str] = set()
        self._exhausted: dict[str, str] = {}      # pending_id -> key
        self._sequence = itertools.count()
        self._worker: Optional[threading.Thread] = None
        self._in_flight = False
        self._available = True
        self._closed = False
        self._last_error: Optional[str] = None
        self._completed_batches = 0
        self._failed_batches = 0
        self._dropped_jobs = 0

    def _active(self) -> bool:
        return self.enabled and self._available and not self._closed

    @property
    def active(self) -> bool:
        with self._lock:
            return self._active()

    def lookup(self, key: str, source: str) -> Optional[str]:
        """Cached translation, only if it was made from exactly this source."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is not None and entry.source == source:
                return entry.translated
            return None

    def enqueue(self, key: str, source: str, priority: int = PRIORITY_DEFAULT) -> bool:
        """Queue a job for key/source. Returns True if a new job was created.

        No job is created when the pipeline is off, the source is empty,
        a valid translation is cached, the same content is already pending,
        or the same content already used up its attempts.
        """
        if not source:
            return False

        with self._lock:
            if not self._active():
                return False
            entry = self._cache.get(key)
            if entry is not None and entry.source == source:
                return False

            pending_id = make_pending_id(key, source)
            if pending_id in self._pending or pending_id in self._exhausted:
                return False

            # A queued job for older content of this field is obsolete
            for job in self._queue:
                if job.key == key:
                    self._pending.discard(job.pending_id)
            self._queue = [job for job in self._queue if job.key != key]

            self._pending.add(pending_id)
            self._queue.append(TranslationJob(
                key=key,
                source=source,
                priority=priority,
                pending_id=pending_id,
                sequence=next(self._sequence),
            ))
            self._sort_queue()

        self._kick()
        return True

    def enqueue_or_serve(self, key: str, source: str, priority: int = PRIORITY_DEFAULT) -> str:
        """Translation if cached for this source, else source (queueing a job)."""
        if not source or not self.active:
            return source
        translated = self.lookup(key, source)
        if translated:
            return translated
        self.enqueue(key, source, priority)
        return source

    def retain(self, keys: set[str]) -> None:
        """Forget cached translations and given-up jobs for keys not in keys.

        Called with the keys of the latest render, so log lines that scrolled
        out of the feed don't stay in memory for the life of the process.
        """
        with self._lock:
            self._cache = {key: entry for key, entry in self._cache.items() if key in keys}
            self._exhausted = {
                pending_id: key for pending_id, key in self._exhausted.items() if key in keys
            }

    def health(self) -> TranslationHealth:
        with self._lock:
            return TranslationHealth(
                enabled=self.enabled,
                translator_available=self._available,
                in_flight=self._in_flight,
                queued=len(self._queue),
                completed_batches=self._completed_batches,
                failed_batches=self._failed_batches,
                dropped_jobs=self._dropped_jobs,
                last_error=self._last_error,
            )

    def queued_jobs(self) -> list[TranslationJob]:
        """Copy of the queue in service order."""
        with self._lock:
            return list(self._queue)

    def close(self) -> None:
        """Stop accepting work. A batch already in flight is abandoned."""
        with self._lock:
            self._closed = True
            self._queue.clear()
            self._pending.clear()

    def process_next_batch(self) -> bool:
        """Take one batch, translate it, record the outcome.

        Returns False if there was nothing to do (empty queue, pipeline
        inactive, or another batch already in flight).
        """
        with self._lock:
            batch = self._take_batch()
        if not batch:
            return False

        items = [(job.key, job.source) for job in batch]
        try:
            translations = self.translator.translate_batch(items)
        except TranslationError as e:
            self._fail_batch(batch, e)
        except Exception as e:
            logger.exception(f"Unexpected translator failure: {e}")
            self._fail_batch(batch, e)
        else:
            self._complete_batch(batch, translations)

        if self.on_batch_complete is not None:
            self.on_batch_complete()
        return True

    def _sort_queue(self) -> None:
        self._queue.sort(key=lambda job: (job.priority, job.sequence))

    def _take_batch(self) -> list[TranslationJob]:
        if self._in_flight or not self._queue or not self._active():
            return []

        batch: list[TranslationJob] = []
        chars = 0
        while self._queue and len(batch) < self.max_batch_items:
            size = len(self._queue[0].source)
            # The first job always goes, however large, so nothing starves
            if batch and chars + size > self.max_batch_chars:
                break
            batch.append(self._queue.pop(0))
            chars += size

        self._in_flight = True
        return batch

    def _complete_batch(self, batch: list[TranslationJob], translations: dict) -> None:
        failed = []
        with self._lock:
            for job in batch:
                text = translations.get(job.key) if isinstance(translations, dict) else None
                if isinstance(text, str) and text.strip():
                    self._cache[job.key] = CacheEntry(source=job.source, translated=text.strip())
                    self._pending.discard(job.pending_id)
                else:
                    failed.append(job)
            self._retry_or_drop(failed)
            self._completed_batches += 1
            self._last_error = None
            self._in_flight = False

        if failed:
            logger.debug(f"Translation batch missing {len(failed)}/{len(batch)} item(s)")

    def _fail_batch(self, batch: list[TranslationJob], error: BaseException) -> None:
        message = str(error) or error.__class__.__name__
        unavailable = is_unavailable_error(error)
        with self._lock:
            self._last_error = message
            self._failed_batches += 1
            self._in_flight = False
            if unavailable:
                self._available = False
                self._queue.clear()
                self._pending.clear()
            else:
                self._retry_or_drop(batch)

        if unavailable:
            logger.warning(f"Translator unavailable, disabling translation: {message}")
        else:
            logger.warning(f"Translation batch of {len(batch)} failed: {message}")

    def _retry_or_drop(self, jobs: list[TranslationJob]) -> None:
        """Requeue failed jobs until they hit max_attempts. Caller holds the lock."""
        if not jobs:
            return
        queued_keys = {job.key for job in self._queue}
        for job in jobs:
            job.attempts += 1
            if job.key in queued_keys:
                # Newer content for this field arrived meanwhile
                self._pending.discard(job.pending_id)
            elif job.attempts >= self.max_attempts:
                self._pending.discard(job.pending_id)
                self._exhausted[job.pending_id] = job.key
                self._dropped_jobs += 1
                logger.info(f"Giving up on translation of {job.key} after {job.attempts} attempt(s)")
            else:
                job.sequence = next(self._sequence)
                self._queue.append(job)
        self._sort_queue()

    def _kick(self) -> None:
        """Start the worker thread if there's work and none is running."""
        if not self.autostart:
            return
        with self._lock:
            if self._worker is not None or not self._queue or not self._active():
                return
            self._worker = threading.Thread(
                target=self._run_worker,
                name="translation-worker",
                daemon=True,
            )
            worker = self._worker
        worker.start()

    def _run_worker(self) -> None:
        try:
            while self.process_next_batch():
                pass
        finally:
            with self._lock:
                self._worker = None
                restart = bool(self._queue) and self._active()
        # Work enqueued while this thread was winding down
        if restart:
            self._kick()
