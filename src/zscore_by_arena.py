"""
Recalculate MUA z-scores separately for each SessionName x ArenaType combination.

Each session is a new recording day, and some sessions are "mixed" with
exposure to more than one arena type, so z-scores are computed within each
session-arena group rather than across the whole session. Timepoints where
the animal is not in any arena (empty arena type) are excluded and keep a
missing z-score.
"""

import warnings

import numpy as np
import pandas as pd


class InsufficientGroupDataWarning(UserWarning):
    """A session-arena group has fewer than two usable values."""


def is_unset(value):
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    return bool(pd.isna(value))


def valid_arena_mask(df, arena_col="arena_type"):
    """Boolean Series, True where the row has an arena type assigned."""
    return ~df[arena_col].map(is_unset).astype(bool)


def group_label(session, arena):
    return f"{session}_{arena}"


def group_members(df, session_col="session_id", arena_col="arena_type"):
    """
    Row positions of every (session, arena) group, keyed by sorted tuples.

    Only rows with a valid arena type are included. Positions rather than
    index labels are used so duplicate index labels can't cross groups.
    """
    valid = valid_arena_mask(df, arena_col).to_numpy()
    keys = zip(df[session_col].to_numpy()[valid], df[arena_col].to_numpy()[valid])
    members = {}
    for key, pos in zip(keys, np.flatnonzero(valid)):
        members.setdefault(key, []).append(pos)
    return {k: members[k] for k in sorted(members, key=lambda k: (str(k[0]), str(k[1])))}


def zscore_values(values, min_group_size=2):
    """
    Z-score the values of a single group.

    Parameters
    ----------
    values : array-like
        Values for one group, may contain NaN.
    min_group_size : int, default=2
        Minimum number of rows and of non-NaN values needed to z-score.

    Returns
    -------
    tuple
        (zscores, mean, std, status). status is "ok", "constant" (all valid
        values identical, z-scores set to 0) or "insufficient" (z-scores NaN).
        std is the sample standard deviation (ddof=1) ignoring NaN.
    """
    x = np.asarray(values, dtype=float)
    valid = x[~np.isnan(x)]

    if len(x) < min_group_size or len(valid) < min_group_size:
        return np.full(x.shape, np.nan), np.nan, np.nan, "insufficient"

    group_mean = float(np.mean(valid))
    if np.all(valid == valid[0]):
        return np.zeros(x.shape), group_mean, 0.0, "constant"

    group_std = float(np.std(valid, ddof=1))
    if not group_std > 0:
        return np.zeros(x.shape), group_mean, 0.0, "constant"

    return (x - group_mean) / group_std, group_mean, group_std, "ok"


def recalculate_zscores(df,
                        session_col="session_id",
                        arena_col="arena_type",
                        value_col="mua_rate",
                        zscore_col="mua_zscore",
                        min_group_size=2,
                        progress_every=50,
                        verbose=True):
    """
    Z-score value_col within every (session, arena) group.

    The input DataFrame is not modified; a copy with zscore_col added (or
    overwritten) is returned along with a per-group summary.

    Parameters
    ----------
    df : pd.DataFrame
        Table with one row per timepoint.
    session_col, arena_col, value_col : str
        Columns holding the session identifier, arena type and value to z-score.
    zscore_col : str, default="mua_zscore"
        Name of the output column.
    min_group_size : int, default=2
        Groups with fewer rows or fewer non-NaN values are left as NaN and an
        InsufficientGroupDataWarning is issued for each.
    progress_every : int, default=50
        Print progress every this many groups (only if verbose).
    verbose : bool, default=True
        Print progress messages.

    Returns
    -------
    tuple
        (new_df, group_info) where group_info has one row per group with
        columns session, arena, group, n_rows, n_valid, mean, std, status.
    """
    for col in (session_col, arena_col, value_col):
        if col not in df.columns:
            raise KeyError(f"Column '{col}' not found in table. Available columns: {list(df.columns)}")

    out = df.copy()
    zscores = np.full(len(out), np.nan)

    values = pd.to_numeric(out[value_col], errors="coerce")

    members = group_members(out, session_col, arena_col)
    n_groups = len(members)

    rows = []
    for i, ((session, arena), idx) in enumerate(members.items(), start=1):
        group_vals = values.iloc[idx].to_numpy(dtype=float)

        z, group_mean, group_std, status = zscore_values(group_vals, min_group_size=min_group_size)
        label = group_label(session, arena)

        if status == "insufficient":
            warnings.warn(f"Group {label} has insufficient data (n={len(idx)})",
                          InsufficientGroupDataWarning, stacklevel=2)
        else:
            zscores[idx] = z
            if verbose and progress_every and i % progress_every == 0:
                print(f"  Processed {i} of {n_groups} groups")

        rows.append({
            "session": session,
            "arena": arena,
            "group": label,
            "n_rows": len(idx),
            "n_valid": int(np.sum(~np.isnan(group_vals))),
            "mean": group_mean,
            "std": group_std,
            "status": status,
        })

    out[zscore_col] = zscores

    group_info = pd.DataFrame(rows, columns=["session", "arena", "group", "n_rows",
                                             "n_valid", "mean", "std", "status"])

    if verbose:
        print(f"  Z-scored {int(out[zscore_col].notna().sum())} rows in {n_groups} groups "
              f"({int((group_info.status == 'insufficient').sum())} with insufficient data)")

    return out, group_info
