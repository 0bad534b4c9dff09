import matplotlib

matplotlib.use("Agg")

import pytest


@pytest.fixture
def two_blob_rows():
    """Two well separated groups in (a, b) plus rows the engine must skip."""
    rows = [{"a": float(i), "b": float(i % 3)} for i in range(5)]
    rows += [{"a": 100.0 + i, "b": 50.0 + (i % 3)} for i in range(5)]
    rows += [
        {"a": None, "b": 1.0},
        {"a": float("nan"), "b": 2.0},
        {"b": 3.0},
    ]
    return rows


@pytest.fixture
def csv_text():
    return (
        "name,height,weight,team\n"
        "ann,1.60,55,red\n"
        "bob,1.82,80,blue\n"
        "cid,1.75,NA,red\n"
        "dee,1.68,60,blue\n"
        "eve,1.90,92,red\n"
        "fay,1.55,50,blue\n"
        "gus,1.85,85,red\n"
        "hal,1.70,65,blue\n"
    )
