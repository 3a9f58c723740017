import warnings

import numpy as np
import pandas as pd
import pytest

from zscore_by_arena import (
    InsufficientGroupDataWarning,
    group_members,
    recalculate_zscores,
    valid_arena_mask,
    zscore_values,
)


def run_quiet(df, **kwargs):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", InsufficientGroupDataWarning)
        return recalculate_zscores(df, verbose=False, **kwargs)


def test_worked_example(example_table):
    with pytest.warns(InsufficientGroupDataWarning, match=r"Group S1_B has insufficient data \(n=1\)"):
        out, group_info = recalculate_zscores(example_table, verbose=False)

    z = out["mua_zscore"].to_numpy()
    np.testing.assert_allclose(z[:3], [-1.0, 0.0, 1.0])
    assert np.isnan(z[3])
    assert np.isnan(z[4])

    assert list(group_info["group"]) == ["S1_A", "S1_B"]
    assert list(group_info["status"]) == ["ok", "insufficient"]
    s1a = group_info.iloc[0]
    assert s1a["mean"] == pytest.approx(20.0)
    assert s1a["std"] == pytest.approx(10.0)


def test_constant_group_is_zero():
    df = pd.DataFrame({"session_id": ["S3"] * 3, "arena_type": ["C"] * 3, "mua_rate": [5.0, 5.0, 5.0]})
    out, group_info = recalculate_zscores(df, verbose=False)
    assert out["mua_zscore"].tolist() == [0.0, 0.0, 0.0]
    assert group_info["status"].tolist() == ["constant"]


def test_constant_group_zeroes_missing_values_too():
    df = pd.DataFrame({"session_id": ["S3"] * 3, "arena_type": ["C"] * 3, "mua_rate": [0.1, np.nan, 0.1]})
    out, _ = recalculate_zscores(df, verbose=False)
    assert out["mua_zscore"].tolist() == [0.0, 0.0, 0.0]


def test_groups_have_zero_mean_unit_std(session_table):
    out, group_info = run_quiet(session_table)
    for (session, arena), g in out.dropna(subset=["arena_type"]).groupby(["session_id", "arena_type"]):
        assert g["mua_zscore"].mean() == pytest.approx(0.0, abs=1e-10)
        assert g["mua_zscore"].std(ddof=1) == pytest.approx(1.0)
    assert (group_info["status"] == "ok").all()
    assert len(group_info) == 12


def test_missing_values_ignored_and_kept_missing():
    df = pd.DataFrame({
        "session_id": ["S1"] * 4,
        "arena_type": ["A"] * 4,
        "mua_rate": [1.0, np.nan, 3.0, 5.0],
    })
    out, group_info = recalculate_zscores(df, verbose=False)
    z = out["mua_zscore"]
    assert np.isnan(z.iloc[1])
    np.testing.assert_allclose(z.dropna(), [-1.0, 0.0, 1.0])
    assert group_info["n_rows"].iloc[0] == 4
    assert group_info["n_valid"].iloc[0] == 3


@pytest.mark.parametrize("unset", [None, np.nan, ""])
def test_unset_arena_never_zscored(unset):
    df = pd.DataFrame({
        "session_id": ["S1"] * 4,
        "arena_type": ["A", "A", unset, unset],
        "mua_rate": [1.0, 2.0, 3.0, 4.0],
    })
    out, group_info = recalculate_zscores(df, verbose=False)
    assert out["mua_zscore"].iloc[2:].isna().all()
    assert group_info["group"].tolist() == ["S1_A"]


def test_group_with_one_valid_value_warns_once():
    df = pd.DataFrame({
        "session_id": ["S1", "S1", "S2", "S2", "S2"],
        "arena_type": ["A", "A", "B", "B", "B"],
        "mua_rate": [1.0, np.nan, np.nan, np.nan, np.nan],
    })
    with warnings.catch_warnings(record=True) as record:
        warnings.simplefilter("always")
        out, group_info = recalculate_zscores(df, verbose=False)

    messages = [str(w.message) for w in record if issubclass(w.category, InsufficientGroupDataWarning)]
    assert messages == [
        "Group S1_A has insufficient data (n=2)",
        "Group S2_B has insufficient data (n=3)",
    ]
    assert out["mua_zscore"].isna().all()


def test_grouping_is_case_sensitive_and_separator_safe():
    df = pd.DataFrame({
        "session_id": ["S1_A", "S1_A", "S1", "S1", "S1", "S1"],
        "arena_type": ["B", "B", "A_B", "A_B", "a_B", "a_B"],
        "mua_rate": [1.0, 3.0, 10.0, 20.0, 100.0, 300.0],
    })
    out, group_info = recalculate_zscores(df, verbose=False)
    assert len(group_info) == 3
    np.testing.assert_allclose(out["mua_zscore"], [-1 / np.sqrt(2), 1 / np.sqrt(2)] * 3)


def test_input_not_modified_and_idempotent(session_table):
    before = session_table.copy()
    first, _ = run_quiet(session_table)
    pd.testing.assert_frame_equal(session_table, before)

    second, _ = run_quiet(first)
    pd.testing.assert_series_equal(first["mua_zscore"], second["mua_zscore"])
    pd.testing.assert_series_equal(first["mua_rate"], second["mua_rate"])


def test_existing_zscore_column_overwritten(example_table):
    df = example_table.assign(mua_zscore=99.0)
    out, _ = run_quiet(df)
    assert np.isnan(out["mua_zscore"].iloc[4])
    assert out["mua_zscore"].iloc[0] == pytest.approx(-1.0)


def test_custom_column_names():
    df = pd.DataFrame({
        "SessionName": ["d1", "d1", "d1"],
        "ArenaType": ["Open", "Open", "Open"],
        "MUA_mean_Hz_replicated": [2.0, 4.0, 6.0],
    })
    out, _ = recalculate_zscores(df, session_col="SessionName", arena_col="ArenaType",
                                 value_col="MUA_mean_Hz_replicated", zscore_col="MUA_Z_New",
                                 verbose=False)
    np.testing.assert_allclose(out["MUA_Z_New"], [-1.0, 0.0, 1.0])


def test_duplicate_index_labels():
    df = pd.DataFrame({
        "session_id": ["S1", "S1", "S2", "S2"],
        "arena_type": ["A", "A", "A", "A"],
        "mua_rate": [1.0, 3.0, 10.0, 30.0],
    }, index=[0, 0, 1, 1])
    out, _ = recalculate_zscores(df, verbose=False)
    np.testing.assert_allclose(out["mua_zscore"], [-1 / np.sqrt(2), 1 / np.sqrt(2)] * 2)


def test_missing_column_raises(example_table):
    with pytest.raises(KeyError, match="mua_hz"):
        recalculate_zscores(example_table, value_col="mua_hz", verbose=False)


def test_progress_printed(capsys):
    df = pd.DataFrame({
        "session_id": np.repeat([f"S{i:03d}" for i in range(100)], 2),
        "arena_type": "A",
        "mua_rate": np.tile([1.0, 2.0], 100),
    })
    recalculate_zscores(df, progress_every=50)
    out = capsys.readouterr().out
    assert "Processed 50 of 100 groups" in out
    assert "Processed 100 of 100 groups" in out


def test_zscore_values_statuses():
    z, mean, std, status = zscore_values([np.nan, 4.0])
    assert status == "insufficient"
    assert np.isnan(z).all()

    z, mean, std, status = zscore_values([2.0, 2.0])
    assert status == "constant"
    assert std == 0.0

    z, mean, std, status = zscore_values([1.0, 2.0, 3.0])
    assert status == "ok"
    assert std == pytest.approx(1.0)


def test_valid_arena_mask_and_group_members(example_table):
    assert valid_arena_mask(example_table).tolist() == [True, True, True, True, False]
    members = group_members(example_table)
    assert list(members) == [("S1", "A"), ("S1", "B")]
    assert [list(v) for v in members.values()] == [[0, 1, 2], [3]]


def test_group_members_ignore_index_labels():
    df = pd.DataFrame({"session_id": ["S2", "S1", "S2"], "arena_type": ["A", "A", "A"]}, index=[7, 7, 7])
    members = group_members(df)
    assert list(members) == [("S1", "A"), ("S2", "A")]
    assert [list(v) for v in members.values()] == [[1], [0, 2]]
