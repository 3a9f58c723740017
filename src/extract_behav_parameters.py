from pathlib import Path
import numpy as np
import pandas as pd
from scipy.ndimage import gaussian_filter1d
from scipy.signal import savgol_filter

from utils import otsu_threshold

MOVING = "moving"
IMMOBILE = "immobile"


def read_dlc_csv(filename):
    """
    Read a DeepLabCut tracking CSV into columns named <bodypart>_<coord>.

    DLC CSVs have three header rows (scorer, bodyparts, coords); the scorer
    row is dropped.
    """
    filename = Path(filename)
    if not filename.exists():
        raise FileNotFoundError(f"DLC file not found: {filename}")

    header_df = pd.read_csv(filename, skiprows=1, nrows=2, header=None)

    row2_values = header_df.iloc[0].astype(str) # bodyparts
    row3_values = header_df.iloc[1].astype(str) # coords

    new_column_names = [f"{val2.lower().replace(' ', '')}_{val3}" for val2, val3 in zip(row2_values, row3_values)]

    df = pd.read_csv(filename, skiprows=3, header=None, names=new_column_names)

    return df


def _bodyparts(columns):
    bodyparts = set()
    for col_name in columns:
        parts = col_name.split('_')
        if len(parts) >= 2 and parts[-1] in ('x', 'y'):
            bodyparts.add('_'.join(parts[:-1]))
    return bodyparts


def interpolate_low_likelihood(df, threshold=0.6):
    # Work on a copy to avoid mutating the caller's DataFrame
    df = df.copy()
    for col in df.columns:
        df[col] = pd.to_numeric(df[col], errors='coerce')

    for bp in _bodyparts(df.columns):
        x_col = f"{bp}_x"
        y_col = f"{bp}_y"
        likelihood_col = f"{bp}_likelihood"

        if not {x_col, y_col, likelihood_col}.issubset(df.columns):
            continue

        condition = df[likelihood_col] < threshold
        df.loc[condition, x_col] = np.nan
        df.loc[condition, y_col] = np.nan

        df[x_col] = df[x_col].interpolate(method='linear', limit_direction='both')
        df[y_col] = df[y_col].interpolate(method='linear', limit_direction='both')

    return df


def smooth_series(values, smooth_method=None, smooth_window=5):
    """
    Smooth a 1D movement trace.

    Parameters
    ----------
    values : pd.Series
        Trace to smooth.
    smooth_method : str, optional
        None, 'gaussian', 'moving_avg' or 'savgol'.
    smooth_window : int, default 5
        Window size. Made odd for 'savgol'.

    Returns
    -------
    pd.Series
    """
    if smooth_method is None:
        return values

    if smooth_method == 'gaussian':
        sigma = smooth_window / 4.0  # Convert window to sigma
        return pd.Series(gaussian_filter1d(values.to_numpy(dtype=float), sigma=sigma), index=values.index)
    elif smooth_method == 'moving_avg':
        return values.rolling(window=smooth_window, center=True, min_periods=1).mean()
    elif smooth_method == 'savgol':
        window = smooth_window if smooth_window % 2 == 1 else smooth_window + 1
        polyorder = min(3, window - 2)
        return pd.Series(savgol_filter(values.to_numpy(dtype=float), window, polyorder, mode='nearest'),
                         index=values.index)
    else:
        raise ValueError(f"Unknown smooth_method: {smooth_method}")


def calc_bodypart_movement(df, smooth_method=None, smooth_window=5,
                           include_bodyparts=None, exclude_bodyparts=None, normalize=True):
    """
    Calculate overall bodypart movement across time.

    Frame-to-frame displacement sqrt(dx^2 + dy^2) for each bodypart, averaged
    across bodyparts, optionally smoothed and min-max normalized to [0, 1].

    Parameters
    ----------
    df : pd.DataFrame
        DataFrame with columns like 'bodypart_x', 'bodypart_y', 'bodypart_likelihood'
    smooth_method : str, optional
        See smooth_series.
    smooth_window : int, default 5
    include_bodyparts : list of str, optional
        Only use these bodyparts.
    exclude_bodyparts : list of str, optional
        Drop these bodyparts. Cannot be used together with include_bodyparts.
    normalize : bool, default True
        If False, return average pixels per bodypart per frame.

    Returns
    -------
    pd.Series
        Movement for each frame. The first frame is 0.

    Raises
    ------
    ValueError
        If both include_bodyparts and exclude_bodyparts are provided.
    """
    if include_bodyparts is not None and exclude_bodyparts is not None:
        raise ValueError("Cannot specify both include_bodyparts and exclude_bodyparts")

    df = df.copy()
    for col in df.columns:
        df[col] = pd.to_numeric(df[col], errors='coerce')

    bodyparts = _bodyparts(df.columns)
    if include_bodyparts is not None:
        bodyparts = bodyparts.intersection(set(include_bodyparts))
    elif exclude_bodyparts is not None:
        bodyparts = bodyparts.difference(set(exclude_bodyparts))

    bodypart_movements = []
    for bp in sorted(bodyparts):
        x_col = f"{bp}_x"
        y_col = f"{bp}_y"
        if x_col in df.columns and y_col in df.columns:
            distance = np.sqrt(df[x_col].diff()**2 + df[y_col].diff()**2)
            bodypart_movements.append(distance)

    if not bodypart_movements:
        return pd.Series(0.0, index=df.index)

    total_movement = pd.concat(bodypart_movements, axis=1).mean(axis=1).fillna(0.0)
    total_movement = smooth_series(total_movement, smooth_method, smooth_window)

    if normalize:
        min_val = total_movement.min()
        max_val = total_movement.max()
        if max_val > min_val:
            return (total_movement - min_val) / (max_val - min_val)
        # All values are the same
        return pd.Series(0.0, index=total_movement.index)

    return total_movement


def classify_behav_state(movement, threshold=None):
    """
    Label each frame as moving or immobile.

    Parameters
    ----------
    movement : array-like
        Movement trace, e.g. from calc_bodypart_movement.
    threshold : float, optional
        Frames with movement above threshold are "moving". If None, the
        threshold is chosen with Otsu's method on the trace.

    Returns
    -------
    tuple
        (states, threshold). states is an array of "moving"/"immobile"
        labels; NaN frames are labelled immobile.
    """
    x = np.asarray(movement, dtype=float)
    if threshold is None:
        threshold = otsu_threshold(x)
    with np.errstate(invalid='ignore'):
        states = np.where(x > threshold, MOVING, IMMOBILE)
    return states, float(threshold)


def bin_states_per_minute(states, fps, movement=None):
    """
    Summarize frame-wise states into one row per minute.

    Parameters
    ----------
    states : array-like
        "moving"/"immobile" labels per frame.
    fps : float
        Video frame rate.
    movement : array-like, optional
        Movement trace; if given, mean movement per minute is added.

    Returns
    -------
    pd.DataFrame
        Columns time_min (start of each minute), prop_moving, behav_state
        (majority label, "moving" on ties) and optionally movement.
    """
    if fps <= 0:
        raise ValueError(f"fps must be positive, got {fps}")

    states = np.asarray(states)
    minute = (np.arange(len(states)) / (fps * 60)).astype(int)

    df = pd.DataFrame({"minute": minute, "is_moving": (states == MOVING).astype(float)})
    if movement is not None:
        df["movement"] = np.asarray(movement, dtype=float)

    agg = {"prop_moving": ("is_moving", "mean")}
    if movement is not None:
        agg["movement"] = ("movement", "mean")

    binned = (
        df
        .groupby("minute")
        .agg(**agg)
        .reset_index()
        .rename(columns={"minute": "time_min"})
    )
    binned["time_min"] = binned["time_min"].astype(float)
    binned["behav_state"] = np.where(binned["prop_moving"] >= 0.5, MOVING, IMMOBILE)
    return binned


def extract_behav_states(dlc_file, fps, likelihood_threshold=0.6, state_threshold=None,
                         smooth_method=None, smooth_window=5, include_bodyparts=None,
                         exclude_bodyparts=None):
    """
    Per-minute behavioural states for one session from its DLC tracking file.

    Reads the file, interpolates low-likelihood positions, calculates movement,
    classifies each frame and bins the states per minute.

    Returns
    -------
    tuple
        (binned, threshold). binned is the output of bin_states_per_minute
        with the movement column; threshold is the moving/immobile threshold used.
    """
    df = read_dlc_csv(dlc_file)
    df = interpolate_low_likelihood(df, threshold=likelihood_threshold)
    movement = calc_bodypart_movement(df,
                                      smooth_method=smooth_method,
                                      smooth_window=smooth_window,
                                      include_bodyparts=include_bodyparts,
                                      exclude_bodyparts=exclude_bodyparts)
    states, threshold = classify_behav_state(movement, threshold=state_threshold)
    return bin_states_per_minute(states, fps, movement=movement), threshold


def merge_behav_states(table, binned, session, session_col="session_id", time_col="time_min"):
    """
    Add prop_moving and behav_state to the rows of one session.

    Rows are matched on the minute their time_col falls in. Rows of other
    sessions, and minutes without tracking, are left missing. The input table
    is not modified.
    """
    for col in (session_col, time_col):
        if col not in table.columns:
            raise KeyError(f"Column '{col}' not found in table. Available columns: {list(table.columns)}")

    out = table.copy()
    if "prop_moving" not in out.columns:
        out["prop_moving"] = np.nan
    if "behav_state" not in out.columns:
        out["behav_state"] = pd.Series([None] * len(out), index=out.index, dtype=object)

    rows = (out[session_col].astype(str) == str(session)).to_numpy()
    minutes = np.floor(pd.to_numeric(out.loc[rows, time_col], errors="coerce"))
    lookup = binned.set_index("time_min")

    out.loc[rows, "prop_moving"] = minutes.map(lookup["prop_moving"]).to_numpy(dtype=float)
    out.loc[rows, "behav_state"] = minutes.map(lookup["behav_state"]).to_numpy(dtype=object)
    return out
