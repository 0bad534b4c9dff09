import numpy as np
import pytest

from algorithms.exceptions import InsufficientDataError
from algorithms.matrix import build_feature_matrix


def test_build_feature_matrix_keeps_only_fully_finite_rows() -> None:
    rows = [
        {"x": 1, "y": 2.5},
        {"x": None, "y": 1.0},
        {"y": 4.0},
        {"x": float("nan"), "y": 1.0},
        {"x": float("inf"), "y": 1.0},
        {"x": "3", "y": 1.0},
        {"x": True, "y": 1.0},
        {"x": np.float32(5.0), "y": np.int64(6)},
        {"x": 7.0, "y": 8.0, "extra": "ignored"},
        {"x": 10 ** 400, "y": 1.0},
    ]

    fm = build_feature_matrix(rows, ["x", "y"], k=1)

    assert fm.X.tolist() == [[1.0, 2.5], [5.0, 6.0], [7.0, 8.0]]
    assert fm.row_index.tolist() == [0, 7, 8]
    assert fm.features == ("x", "y")
    assert fm.n_rows == 10
    assert fm.n_valid == 3
    assert fm.n_excluded == 7
    assert fm.X.dtype == np.float64


def test_build_feature_matrix_column_order_follows_features() -> None:
    rows = [{"a": 1.0, "b": 2.0}, {"a": 3.0, "b": 4.0}]

    fm = build_feature_matrix(rows, ["b", "a"], k=1)

    assert fm.X.tolist() == [[2.0, 1.0], [4.0, 3.0]]


def test_build_feature_matrix_needs_two_rows_per_cluster() -> None:
    rows = [{"x": float(i), "y": float(i)} for i in range(3)]

    with pytest.raises(InsufficientDataError) as excinfo:
        build_feature_matrix(rows, ["x", "y"], k=2)

    assert excinfo.value.n_valid == 3
    assert excinfo.value.k == 2


def test_build_feature_matrix_does_not_touch_rows() -> None:
    rows = [{"x": 1, "y": None}, {"x": 2, "y": 3}, {"x": 4, "y": 5}]
    snapshot = [dict(r) for r in rows]

    build_feature_matrix(rows, ["x", "y"], k=1)

    assert rows == snapshot
