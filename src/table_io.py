"""
Loading, backing up and saving the GLM table.

Pickled tables are read and written with dill, the same way the pipeline
caches are stored. A pickle may hold the DataFrame itself or a dict with the
table under a key (e.g. "Final_GLM_Table"); the other entries of the dict are
kept and written back unchanged.
"""

import shutil
import warnings
from datetime import datetime
from pathlib import Path

import dill
import pandas as pd

PICKLE_SUFFIXES = (".pickle", ".pkl")
CSV_SUFFIXES = (".csv",)
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


class BackupFailedWarning(UserWarning):
    """The backup copy could not be written; the save goes ahead regardless."""


def _check_suffix(path):
    suffix = path.suffix.lower()
    if suffix not in PICKLE_SUFFIXES + CSV_SUFFIXES:
        raise ValueError(f"Unsupported table format '{path.suffix}' for {path}. "
                         f"Use one of {list(PICKLE_SUFFIXES + CSV_SUFFIXES)}")
    return suffix


def _read_csv(path, text_cols=()):
    df = pd.read_csv(path)
    text_cols = [c for c in dict.fromkeys(text_cols) if c in df.columns]
    if text_cols:
        raw = pd.read_csv(path, usecols=text_cols, dtype=str, keep_default_na=False)
        for col in text_cols:
            df[col] = raw[col].to_numpy()
    return df


def load_table(path, table_key=None, text_cols=()):
    """
    Load the table from a .pickle/.pkl or .csv file.

    Parameters
    ----------
    path : str or Path
        File to load.
    table_key : str, optional
        Key of the DataFrame when the pickle holds a dict. If None and the
        dict holds exactly one DataFrame, that one is used.
    text_cols : sequence of str, optional
        CSV columns kept as the exact text in the file, e.g. the session and
        arena columns. No type or NA inference is applied to them, so "01"
        stays distinct from "1" and a label like "NA" is kept; only empty
        cells read as "".

    Returns
    -------
    tuple
        (df, container). container is the loaded dict (or None if the file
        held the DataFrame directly) and is needed by save_table to write the
        same layout back.

    Raises
    ------
    FileNotFoundError
        If path does not exist.
    ValueError
        If the format is unsupported or no DataFrame can be found.
    KeyError
        If table_key is not in the pickled dict.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")

    suffix = _check_suffix(path)
    if suffix in CSV_SUFFIXES:
        return _read_csv(path, text_cols), None

    with open(path, "rb") as f:
        obj = dill.load(f)

    if isinstance(obj, pd.DataFrame):
        return obj, None

    if isinstance(obj, dict):
        if table_key is None:
            frames = [k for k, v in obj.items() if isinstance(v, pd.DataFrame)]
            if len(frames) != 1:
                raise ValueError(f"{path} holds {len(frames)} tables ({frames}); "
                                 f"specify which one with table_key")
            table_key = frames[0]
        if table_key not in obj:
            raise KeyError(f"Table '{table_key}' not found in {path}. Available keys: {list(obj)}")
        if not isinstance(obj[table_key], pd.DataFrame):
            raise ValueError(f"'{table_key}' in {path} is not a DataFrame")
        return obj[table_key], obj

    raise ValueError(f"{path} does not contain a DataFrame (found {type(obj).__name__})")


def make_backup_path(path, timestamp=None):
    """<folder>/<stem>_backup_<YYYYmmdd_HHMMSS><suffix> next to the original."""
    path = Path(path)
    if timestamp is None:
        timestamp = datetime.now()
    stamp = timestamp.strftime(BACKUP_TIMESTAMP_FORMAT)
    return path.with_name(f"{path.stem}_backup_{stamp}{path.suffix}")


def backup_file(path, timestamp=None, verbose=True):
    """
    Copy path to a timestamped backup before it is overwritten.

    A failed copy is not fatal: a BackupFailedWarning is issued and None is
    returned so the caller can carry on with the save.
    """
    backup_path = make_backup_path(path, timestamp)
    try:
        shutil.copy2(path, backup_path)
    except OSError as e:
        warnings.warn(f"Could not create backup file {backup_path}: {e}",
                      BackupFailedWarning, stacklevel=2)
        return None

    if verbose:
        print(f"  Backup created: {backup_path}")
    return backup_path


def save_table(df, path, container=None, table_key=None, verbose=True):
    """
    Overwrite path with df, in the same format and layout it was loaded from.
    """
    path = Path(path)
    suffix = _check_suffix(path)

    if suffix in CSV_SUFFIXES:
        df.to_csv(path, index=False)
    else:
        if container is not None:
            if table_key is None:
                frames = [k for k, v in container.items() if isinstance(v, pd.DataFrame)]
                if len(frames) != 1:
                    raise ValueError("table_key is needed to save into a container with "
                                     f"{len(frames)} tables")
                table_key = frames[0]
            data = dict(container)
            data[table_key] = df
        else:
            data = df
        with open(path, "wb") as f:
            dill.dump(data, f)

    if verbose:
        print(f"  Updated table saved to: {path}")
    return path
