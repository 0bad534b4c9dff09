import threading

import numpy as np
import pytest

from algorithms.pipeline import ClusterFailure, ClusterRequest, ClusterResult
from algorithms.worker import ClusteringWorker

RESULT_TIMEOUT = 60


def _blob_rows():
    return [{"v": v, "w": 0.0} for v in (0.0, 1.0, 2.0, 10.0, 11.0, 12.0)]


def test_worker_returns_result_without_blocking_submit() -> None:
    with ClusteringWorker() as worker:
        future = worker.submit(ClusterRequest(_blob_rows(), ["v", "w"], k=2))
        outcome = future.result(timeout=RESULT_TIMEOUT)

    assert isinstance(outcome, ClusterResult)
    assert outcome.labels.tolist() == [0, 0, 0, 1, 1, 1]
    assert outcome.iterations == 2
    assert not outcome.labels.flags.writeable
    assert not outcome.centroids.flags.writeable
    assert not outcome.counts.flags.writeable
    assert worker.closed


def test_worker_turns_engine_errors_into_failures() -> None:
    rows = [{"a": 1.0, "b": 2.0}] * 3

    with ClusteringWorker() as worker:
        outcome = worker.submit(ClusterRequest(rows, ["a", "b"], k=2)).result(timeout=RESULT_TIMEOUT)
        invalid = worker.submit(ClusterRequest(rows, ["a", "b"], k=42)).result(timeout=RESULT_TIMEOUT)

    assert isinstance(outcome, ClusterFailure)
    assert outcome.kind == "insufficient_data"
    assert isinstance(invalid, ClusterFailure)
    assert invalid.kind == "validation"


def test_worker_delivers_results_in_submission_order() -> None:
    rng = np.random.default_rng(1)
    rows = [{"x": float(a), "y": float(b)} for a, b in rng.uniform(size=(300, 2))]
    delivered = []
    lock = threading.Lock()

    def _record(k):
        def _callback(future):
            with lock:
                delivered.append((k, future.result().k))
        return _callback

    with ClusteringWorker() as worker:
        futures = [
            worker.submit(ClusterRequest(rows, ["x", "y"], k=k), callback=_record(k))
            for k in (5, 2, 9, 3)
        ]
        outcomes = [f.result(timeout=RESULT_TIMEOUT) for f in futures]

    assert [o.k for o in outcomes] == [5, 2, 9, 3]
    assert delivered == [(5, 5), (2, 2), (9, 9), (3, 3)]


def test_terminate_cancels_outstanding_request() -> None:
    rng = np.random.default_rng(2)
    rows = [{"x": float(a), "y": float(b)} for a, b in rng.uniform(size=(60000, 2))]
    worker = ClusteringWorker()

    future = worker.submit(ClusterRequest(rows, ["x", "y"], k=10, max_iterations=30))
    worker.terminate()

    assert future.cancelled()
    assert worker.closed
    with pytest.raises(RuntimeError):
        worker.submit(ClusterRequest(_blob_rows(), ["v", "w"], k=2))


def test_fresh_worker_after_terminate_still_works() -> None:
    stale = ClusteringWorker()
    stale.submit(ClusterRequest(_blob_rows(), ["v", "w"], k=2))
    stale.terminate()

    with ClusteringWorker() as fresh:
        outcome = fresh.submit(ClusterRequest(_blob_rows(), ["v", "w"], k=2)).result(timeout=RESULT_TIMEOUT)

    assert outcome.ok
    assert outcome.counts.tolist() == [3, 3]


def test_close_without_submissions_is_a_no_op() -> None:
    worker = ClusteringWorker()
    worker.close()

    assert worker.closed
    assert not worker.busy


def test_crashed_worker_fails_outstanding_requests() -> None:
    rng = np.random.default_rng(3)
    rows = [{"x": float(a), "y": float(b)} for a, b in rng.uniform(size=(100000, 2))]
    worker = ClusteringWorker()

    futures = [
        worker.submit(ClusterRequest(rows, ["x", "y"], k=k, max_iterations=30))
        for k in (10, 9)
    ]
    worker._process.kill()
    outcomes = [f.result(timeout=RESULT_TIMEOUT) for f in futures]

    # the second request cannot have finished before the kill
    assert isinstance(outcomes[1], ClusterFailure)
    assert outcomes[1].kind == "internal"
    assert not worker.busy
    worker.terminate()


def test_unpicklable_request_fails_in_submit() -> None:
    rows = [{"x": 1.0, "y": 2.0, "lock": threading.Lock()}] * 4

    with ClusteringWorker() as worker:
        with pytest.raises(TypeError):
            worker.submit(ClusterRequest(rows, ["x", "y"], k=2))
        assert not worker.busy
