import pandas as pd
import pytest

from mixed_models import build_formula, fit_arena_mixedlm


def test_build_formula():
    assert build_formula("mua_zscore") == "Q('mua_zscore') ~ C(arena)"
    assert build_formula("MUA_Z_New", reference_arena="Home", covariates=["time_min"]) == (
        "Q('MUA_Z_New') ~ C(arena, Treatment(reference='Home')) + Q('time_min')"
    )


def test_arena_effect_recovered(session_table):
    res = fit_arena_mixedlm(session_table, ycol="mua_rate", verbose=False)
    assert res is not None
    assert res["n_obs"] == 120
    assert res["n_sessions"] == 6
    assert res["n_arenas"] == 2

    coefs = res["coefs"].set_index("term")
    arena_term = [t for t in coefs.index if t.endswith("[T.B]")]
    assert len(arena_term) == 1
    b = coefs.loc[arena_term[0]]
    assert b["coef"] == pytest.approx(2.0, abs=0.6)
    assert b["p_value"] < 0.001
    assert b["ci95_low"] < b["coef"] < b["ci95_high"]


def test_reference_arena_and_covariates(session_table):
    res = fit_arena_mixedlm(session_table, ycol="mua_rate", reference_arena="B",
                            covariates=["time_min"], verbose=False)
    terms = res["coefs"]["term"].tolist()
    assert "C(arena, Treatment(reference='B'))[T.A]" in terms
    assert "Q('time_min')" in terms
    coef_a = res["coefs"].set_index("term").loc["C(arena, Treatment(reference='B'))[T.A]", "coef"]
    assert coef_a < 0


def test_too_few_sessions_returns_none(session_table):
    one_session = session_table[session_table["session_id"] == "S0"]
    assert fit_arena_mixedlm(one_session, ycol="mua_rate", verbose=False) is None


def test_single_arena_returns_none(session_table):
    only_a = session_table[session_table["arena_type"] == "A"]
    assert fit_arena_mixedlm(only_a, ycol="mua_rate", verbose=False) is None


def test_unknown_reference_arena(session_table):
    with pytest.raises(ValueError, match="Reference arena"):
        fit_arena_mixedlm(session_table, ycol="mua_rate", reference_arena="Z", verbose=False)


def test_missing_column(session_table):
    with pytest.raises(KeyError):
        fit_arena_mixedlm(session_table, ycol="mua_rate", covariates=["speed"], verbose=False)


def test_rows_without_arena_are_dropped():
    df = pd.DataFrame({
        "session_id": [f"S{i // 4}" for i in range(16)],
        "arena_type": ["A", "B", "A", ""] * 4,
        "mua_rate": [v + 0.4 * (i // 4) + 0.1 * (i % 3) for i, v in enumerate([1.0, 3.0, 1.5, 100.0] * 4)],
    })
    res = fit_arena_mixedlm(df, ycol="mua_rate", min_obs=4, verbose=False)
    assert res is not None
    assert res["n_obs"] == 12
