"""
Execution boundary for clustering requests.

``ClusteringWorker`` owns one background process that runs requests through
``run_clustering`` one at a time, in submission order. Submitting returns a
``concurrent.futures.Future`` straight away; it resolves to exactly one
``ClusterResult`` or ``ClusterFailure``. Engine errors never come back as
exceptions.

There is no mid-run cancellation. A caller that no longer wants an outstanding
result calls ``terminate()``, which kills the process and cancels the pending
futures, and then creates a new worker. All run state lives in the child
process, so killing it cannot leave the caller's data half-updated.
"""

import itertools
import logging
import multiprocessing
import pickle
import threading
from collections import OrderedDict
from concurrent.futures import Future
from typing import Callable, Dict, Optional

from .pipeline import ClusterFailure, ClusterOutcome, ClusterRequest, run_clustering

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1
JOIN_TIMEOUT = 5.0


def _worker_main(inbox, outbox) -> None:
    """Child-process loop: one request in, one outcome out, until the None sentinel."""
    while True:
        message = inbox.get()
        if message is None:
            break

        job_id, payload = message
        try:
            outcome = run_clustering(pickle.loads(payload))
        except Exception as e:
            # last line of defence: nothing may escape the process boundary
            logger.exception("clustering job %d crashed", job_id)
            outcome = ClusterFailure(error=str(e) or type(e).__name__, kind="internal")

        outbox.send((job_id, outcome))

    outbox.close()


class ClusteringWorker:
    """
    Single-slot background clustering process.

    Parameters
    ----------
    mp_context : str, optional
        Multiprocessing start method ('fork', 'spawn', 'forkserver').
        Defaults to the platform default.
    poll_interval : float, default=0.1
        Seconds between liveness checks while waiting for results.

    Notes
    -----
    Completion callbacks passed to ``submit`` run on the worker's listener
    thread, not on the thread that submitted the request.
    """

    def __init__(self, mp_context: Optional[str] = None, poll_interval: float = POLL_INTERVAL):
        self._ctx = multiprocessing.get_context(mp_context)
        self._poll_interval = poll_interval
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._pending: Dict[int, Future] = OrderedDict()
        self._stop = threading.Event()
        self._closed = False
        self._process = None
        self._inbox = None
        self._reader = None
        self._listener: Optional[threading.Thread] = None

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------
    def _ensure_started(self) -> None:
        if self._process is not None:
            return

        self._inbox = self._ctx.Queue()
        self._reader, writer = self._ctx.Pipe(duplex=False)
        self._process = self._ctx.Process(
            target=_worker_main,
            args=(self._inbox, writer),
            name="clustering-worker",
            daemon=True,
        )
        self._process.start()
        # only the child writes; dropping our copy lets the reader see EOF if it dies
        writer.close()

        self._listener = threading.Thread(
            target=self._listen, name="clustering-worker-listener", daemon=True
        )
        self._listener.start()
        logger.debug("clustering worker started (pid=%s)", self._process.pid)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def busy(self) -> bool:
        """True while at least one submitted request has no outcome yet."""
        with self._lock:
            return bool(self._pending)

    def submit(
        self,
        request: ClusterRequest,
        callback: Optional[Callable[[Future], None]] = None,
    ) -> "Future[ClusterOutcome]":
        """
        Queues a request and returns a future for its outcome.

        Parameters
        ----------
        request : ClusterRequest
            The clustering job.
        callback : callable, optional
            Called with the future once it is done (or cancelled).

        Raises
        ------
        RuntimeError
            If the worker was closed or terminated.
        """
        # pickled here so a bad payload fails in the caller, not in the feeder thread
        payload = pickle.dumps(request)

        with self._lock:
            if self._closed:
                raise RuntimeError("ClusteringWorker has been shut down; create a new one.")
            self._ensure_started()
            job_id = next(self._ids)
            future: Future = Future()
            if callback is not None:
                future.add_done_callback(callback)
            self._pending[job_id] = future
            self._inbox.put((job_id, payload))

        logger.debug("submitted clustering job %d (k=%s, features=%s)", job_id, request.k, list(request.features))
        return future

    def close(self, timeout: float = JOIN_TIMEOUT) -> None:
        """Lets queued requests finish, then stops the process."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            process = self._process
            if process is not None:
                self._inbox.put(None)

        if process is None:
            return

        process.join(timeout)
        if process.is_alive():
            logger.warning("clustering worker did not exit within %.1fs; terminating", timeout)
            self.terminate()
            return
        self._listener.join(timeout)

    def terminate(self) -> None:
        """Kills the process immediately and cancels every outstanding request."""
        with self._lock:
            self._closed = True
            self._stop.set()
            pending = list(self._pending.values())
            self._pending.clear()
            process = self._process

        if process is not None and process.is_alive():
            process.terminate()
            process.join(JOIN_TIMEOUT)
            if process.is_alive():
                process.kill()
                process.join()

        if self._inbox is not None:
            self._inbox.cancel_join_thread()
            self._inbox.close()

        if self._listener is not None and self._listener is not threading.current_thread():
            self._listener.join(JOIN_TIMEOUT)

        for future in pending:
            future.cancel()
        if pending:
            logger.info("clustering worker terminated; %d request(s) abandoned", len(pending))

    def __enter__(self) -> "ClusteringWorker":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.terminate()

    # -----------------------------------------------------------------
    # Result delivery
    # -----------------------------------------------------------------
    def _resolve(self, job_id: int, outcome: ClusterOutcome) -> None:
        with self._lock:
            future = self._pending.pop(job_id, None)
        if future is None:
            return
        if future.set_running_or_notify_cancel():
            future.set_result(outcome)

    def _drain(self) -> None:
        while self._reader.poll(0):
            try:
                job_id, outcome = self._reader.recv()
            except (EOFError, OSError):
                return
            self._resolve(job_id, outcome)

    def _fail_pending(self, message: str) -> None:
        with self._lock:
            pending = list(self._pending.items())
            self._pending.clear()
        for _, future in pending:
            if future.set_running_or_notify_cancel():
                future.set_result(ClusterFailure(error=message, kind="internal"))

    def _listen(self) -> None:
        try:
            while not self._stop.is_set():
                try:
                    ready = self._reader.poll(self._poll_interval)
                except (EOFError, OSError):
                    ready = False

                if ready:
                    try:
                        job_id, outcome = self._reader.recv()
                    except (EOFError, OSError):
                        ready = False
                    else:
                        self._resolve(job_id, outcome)
                        continue

                if not self._process.is_alive():
                    self._drain()
                    if self._stop.is_set():
                        break
                    if not self._closed:
                        logger.error(
                            "clustering worker exited unexpectedly (exitcode=%s)",
                            self._process.exitcode,
                        )
                    self._fail_pending("Clustering worker exited before finishing the request.")
                    break
        finally:
            self._reader.close()
