"""
Periodic checkpoint of the trajectory to the archive while a trip is recorded.

Every `interval` new points the whole path is pushed as a draft, keyed by an
id minted when tracking starts. Pushes run on an executor so fix handling
never waits on the network; only one push is in flight at a time.
"""

import threading
import uuid
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Optional

from trk.storage.remote import DraftSink
from trk.utils.log import get_logger
from trk.utils.validate import Identity, Point

logger = get_logger(__name__)


class CheckpointSync:
    """
    Decides when to push a draft and tracks how far the archive has caught up.
    """

    def __init__(self, sink: Optional[DraftSink], interval: int = 10, executor: Optional[Executor] = None):
        self.sink = sink
        self.interval = interval
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="checkpoint")
        self.draft_id: Optional[str] = None
        self.last_synced = 0
        self._lock = threading.Lock()
        self._inflight = False
        # bumped on every reset so late completions of older pushes are ignored
        self._generation = 0

    def begin(self) -> str:
        """
        Mint a fresh draft id for a new tracking run.
        """
        with self._lock:
            self.draft_id = str(uuid.uuid4())
            self.last_synced = 0
            self._generation += 1
        logger.info("Tracking draft %s", self.draft_id)
        return self.draft_id

    def end(self) -> None:
        """
        Drop the draft id; a push already in flight finishes on its own.
        """
        with self._lock:
            self.draft_id = None

    def reset(self) -> None:
        with self._lock:
            self.last_synced = 0
            self._generation += 1

    def due(self, count: int) -> bool:
        return count > 0 and count >= self.last_synced + self.interval

    def evaluate(self, points: list[Point], identity: Optional[Identity]) -> Optional[Future]:
        """
        Push the full path if enough new points accumulated since the last sync.

        Returns the future of the push, or None when nothing was sent.
        """
        count = len(points)
        with self._lock:
            if self.sink is None or self.draft_id is None or identity is None:
                return None
            if not self.due(count):
                return None
            if self._inflight:
                return None
            draft_id = self.draft_id
            generation = self._generation
            try:
                future = self.executor.submit(self.sink.push_draft, draft_id, identity, list(points))
            except RuntimeError as e:
                logger.warning("Checkpoint of draft %s not scheduled: %s", draft_id, e)
                return None
            self._inflight = True
        future.add_done_callback(lambda f: self._on_done(f, draft_id, count, generation))
        return future

    def _on_done(self, future: Future, draft_id: str, count: int, generation: int) -> None:
        exc = future.exception()
        with self._lock:
            self._inflight = False
            if exc is None and generation == self._generation:
                self.last_synced = max(self.last_synced, count)
        if exc is not None:
            logger.warning("Checkpoint of draft %s failed (%d points): %s", draft_id, count, exc)
        else:
            logger.debug("Checkpointed draft %s at %d points", draft_id, count)

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False)
