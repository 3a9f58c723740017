import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def example_table():
    """Rows from the worked example: S1_A z-scores to [-1, 0, 1]."""
    return pd.DataFrame({
        "session_id": ["S1", "S1", "S1", "S1", "S2"],
        "arena_type": ["A", "A", "A", "B", ""],
        "mua_rate": [10.0, 20.0, 30.0, 5.0, 7.0],
        "time_min": [0.0, 1.0, 2.0, 3.0, 0.0],
    })


@pytest.fixture
def session_table():
    """Six sessions, two arenas each; arena B runs about 2 Hz above arena A."""
    rng = np.random.default_rng(0)
    rows = []
    for s in range(6):
        offset = rng.normal(0, 3)
        for arena, shift in (("A", 0.0), ("B", 2.0)):
            for t in range(10):
                rows.append({
                    "session_id": f"S{s}",
                    "arena_type": arena,
                    "mua_rate": 20 + offset + shift + rng.normal(0, 1),
                    "time_min": float(t),
                })
        rows.append({"session_id": f"S{s}", "arena_type": None, "mua_rate": 15.0, "time_min": 10.0})
    return pd.DataFrame(rows)
