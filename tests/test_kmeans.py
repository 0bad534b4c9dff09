import numpy as np
import pytest

from algorithms.exceptions import ValidationError
from algorithms.kmeans import (
    ConvergenceState,
    KMeans,
    assign_labels,
    centroid_shift,
    initialize_centroids,
    update_centroids,
)


def test_initialize_centroids_picks_evenly_spaced_rows() -> None:
    X = np.arange(10, dtype=float).reshape(10, 1)

    centroids = initialize_centroids(X, 3)

    # rows 0, 9 // 2 = 4 and 9
    assert centroids[:, 0].tolist() == [0.0, 4.0, 9.0]


def test_initialize_centroids_single_cluster_uses_first_row() -> None:
    X = np.array([[3.0, 4.0], [5.0, 6.0], [7.0, 8.0]])

    centroids = initialize_centroids(X, 1)

    assert centroids.tolist() == [[3.0, 4.0]]


def test_initialize_centroids_returns_a_copy() -> None:
    X = np.array([[1.0, 1.0], [2.0, 2.0]])

    centroids = initialize_centroids(X, 2)
    centroids[0, 0] = 99.0

    assert X[0, 0] == 1.0


def test_assign_labels_picks_nearest_and_breaks_ties_by_lowest_index() -> None:
    X = np.array([[0.1], [0.5], [0.9]])
    centroids = np.array([[0.0], [1.0]])

    labels = assign_labels(X, centroids)

    assert labels.tolist() == [0, 0, 1]


def test_update_centroids_means_and_keeps_empty_cluster() -> None:
    X = np.array([[0.0, 0.0], [2.0, 2.0], [10.0, 10.0]])
    labels = np.array([0, 0, 2])
    previous = np.array([[1.0, 1.0], [0.123456789, -7.5], [9.0, 9.0]])

    centroids = update_centroids(X, labels, 3, previous)

    assert centroids[0].tolist() == [1.0, 1.0]
    assert centroids[2].tolist() == [10.0, 10.0]
    # empty cluster keeps its previous centroid exactly
    assert np.array_equal(centroids[1], previous[1])


def test_centroid_shift_is_total_squared_displacement() -> None:
    old = np.array([[0.0, 0.0], [1.0, 1.0]])
    new = np.array([[1.0, 0.0], [1.0, 3.0]])

    assert centroid_shift(old, new) == pytest.approx(5.0)


def test_fit_two_groups_converges_in_two_iterations() -> None:
    X = np.array([[0.0], [1.0], [2.0], [10.0], [11.0], [12.0]])

    model = KMeans(n_clusters=2, max_iters=30).fit(X)

    assert model.labels_.tolist() == [0, 0, 0, 1, 1, 1]
    assert model.centroids[:, 0].tolist() == [1.0, 11.0]
    assert model.n_iter_ == 2
    assert model.state_ is ConvergenceState.CONVERGED
    assert model.inertia_ == pytest.approx(4.0)


def test_fit_stops_at_iteration_cap() -> None:
    X = np.array([[0.0], [1.0], [2.0], [10.0], [11.0], [12.0]])

    model = KMeans(n_clusters=2, max_iters=1).fit(X)

    assert model.n_iter_ == 1
    assert model.state_ is ConvergenceState.MAX_ITER_REACHED


def test_fit_identical_points_converges_immediately() -> None:
    X = np.ones((6, 2))

    model = KMeans(n_clusters=3).fit(X)

    assert model.n_iter_ == 1
    assert model.state_ is ConvergenceState.CONVERGED
    assert model.labels_.tolist() == [0] * 6
    assert model.inertia_ == 0.0
    assert np.array_equal(model.centroids, np.ones((3, 2)))


def test_inertia_never_increases_between_iterations() -> None:
    rng = np.random.default_rng(7)
    X = np.vstack([
        rng.normal(loc=(0, 0), scale=1.0, size=(80, 2)),
        rng.normal(loc=(4, 4), scale=1.5, size=(80, 2)),
        rng.normal(loc=(0, 6), scale=0.8, size=(80, 2)),
    ])

    model = KMeans(n_clusters=5, max_iters=100).fit(X)

    history = model.inertia_history_
    assert len(history) == model.n_iter_
    for before, after in zip(history, history[1:]):
        assert after <= before + 1e-9
    assert model.inertia_ == pytest.approx(history[-1])


def test_fit_is_deterministic() -> None:
    rng = np.random.default_rng(3)
    X = rng.uniform(size=(150, 3))

    first = KMeans(n_clusters=4).fit(X)
    second = KMeans(n_clusters=4).fit(X)

    assert np.array_equal(first.labels_, second.labels_)
    assert np.array_equal(first.centroids, second.centroids)
    assert first.inertia_ == second.inertia_
    assert first.n_iter_ == second.n_iter_


def test_iterations_never_exceed_cap() -> None:
    rng = np.random.default_rng(11)
    X = rng.uniform(size=(300, 2))

    for cap in (1, 2, 3, 5):
        model = KMeans(n_clusters=8, max_iters=cap).fit(X)
        assert 1 <= model.n_iter_ <= cap


def test_invalid_parameters_raise_validation_error() -> None:
    with pytest.raises(ValidationError):
        KMeans(n_clusters=0)
    with pytest.raises(ValidationError):
        KMeans(n_clusters=2, max_iters=0)

    model = KMeans(n_clusters=3)
    with pytest.raises(ValidationError):
        model.fit(np.array([[1.0], [2.0]]))
    assert model.state_ is ConvergenceState.FAILED


def test_predict_requires_fit() -> None:
    with pytest.raises(ValueError):
        KMeans(n_clusters=2).predict(np.zeros((2, 1)))

    model = KMeans(n_clusters=2).fit(np.array([[0.0], [1.0], [10.0], [11.0]]))
    assert model.predict(np.array([[0.4], [10.6]])).tolist() == [0, 1]
