"""
Linear mixed-effects models of MUA z-scores.

Model:
  zscore ~ C(arena, Treatment(reference)) [+ covariates]
  random: (1 | session)
"""

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf

from zscore_by_arena import valid_arena_mask


def coef_table(res):
    """Coefficient, SE, z, p and 95% CI for each fixed-effect term."""
    fe_names = res.fe_params.index
    ci = res.conf_int().loc[fe_names]
    return pd.DataFrame({
        "term": fe_names,
        "coef": res.fe_params.to_numpy(dtype=float),
        "se": res.bse.loc[fe_names].to_numpy(dtype=float),
        "z": res.tvalues.loc[fe_names].to_numpy(dtype=float),
        "p_value": res.pvalues.loc[fe_names].to_numpy(dtype=float),
        "ci95_low": ci.iloc[:, 0].to_numpy(dtype=float),
        "ci95_high": ci.iloc[:, 1].to_numpy(dtype=float),
    })


def build_formula(ycol, reference_arena=None, covariates=()):
    if reference_arena is None:
        arena_term = "C(arena)"
    else:
        arena_term = f"C(arena, Treatment(reference={reference_arena!r}))"
    terms = [arena_term] + [f"Q({c!r})" for c in covariates]
    return f"Q({ycol!r}) ~ " + " + ".join(terms)


def fit_arena_mixedlm(df,
                      ycol="mua_zscore",
                      arena_col="arena_type",
                      session_col="session_id",
                      covariates=(),
                      reference_arena=None,
                      min_sessions=2,
                      min_obs=6,
                      verbose=True):
    """
    Fit a random-intercept (per session) mixed model of ycol on arena type.

    Parameters
    ----------
    df : pd.DataFrame
        Table with ycol, arena_col, session_col and any covariates.
    covariates : sequence of str
        Extra numeric fixed-effect columns (e.g. time_min, prop_moving).
    reference_arena : str, optional
        Arena type used as the reference level; first level alphabetically if None.
    min_sessions, min_obs : int
        Minimum number of sessions and complete rows needed to fit.

    Returns
    -------
    dict or None
        formula, n_obs, n_sessions, n_arenas, converged, llf and coefs
        (DataFrame from coef_table). None if there is too little data or the
        fit fails.
    """
    covariates = list(covariates)
    missing = [c for c in [ycol, arena_col, session_col] + covariates if c not in df.columns]
    if missing:
        raise KeyError(f"Columns not found in table: {missing}")

    d = df.loc[valid_arena_mask(df, arena_col).to_numpy(), [ycol, arena_col, session_col] + covariates].copy()
    d = d.rename(columns={arena_col: "arena", session_col: "session"})
    for col in [ycol] + covariates:
        d[col] = pd.to_numeric(d[col], errors="coerce")
    d = d[np.isfinite(d[[ycol] + covariates]).all(axis=1)]
    d["arena"] = d["arena"].astype(str)
    d["session"] = d["session"].astype(str)

    n_sessions = d["session"].nunique()
    n_arenas = d["arena"].nunique()
    if n_sessions < min_sessions or len(d) < min_obs or n_arenas < 2:
        if verbose:
            print(f"  Not enough data for MixedLM on {ycol}: {len(d)} rows, "
                  f"{n_sessions} sessions, {n_arenas} arena types")
        return None

    if reference_arena is not None and reference_arena not in set(d["arena"]):
        raise ValueError(f"Reference arena '{reference_arena}' not in data: {sorted(d['arena'].unique())}")

    formula = build_formula(ycol, reference_arena, covariates)
    try:
        model = smf.mixedlm(formula, d, groups=d["session"])
        res = model.fit(reml=True, method="lbfgs", maxiter=500, disp=False)
    except (ValueError, np.linalg.LinAlgError) as e:
        print(f"  MixedLM failed for {ycol}: {e}")
        return None

    if verbose:
        print(res.summary())

    return {
        "formula": formula,
        "n_obs": int(len(d)),
        "n_sessions": int(n_sessions),
        "n_arenas": int(n_arenas),
        "converged": bool(res.converged),
        "llf": float(res.llf),
        "coefs": coef_table(res),
    }
