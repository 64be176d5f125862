"""Utilities to work with Pandas data frames"""

from __future__ import annotations

from collections.abc import Collection, Iterable
from typing import Any, Optional

import pandas as pd


def as_df(
    data: Collection[dict[str, Any]],
    *,
    columns: Optional[Iterable[str]] = None,
) -> pd.DataFrame:
    """Generates a new Pandas `DataFrame` from a collection of records.

    Each dictionary corresponds to one row of the data frame. Unless `columns` are given explicitly, the columns are inferred
    from the keys of the first record, in their insertion order. All records have to provide at least these keys.

    Parameters
    ----------
    data : Collection[dict[str, Any]]
        The rows of the data frame
    columns : Optional[Iterable[str]], optional
        The columns to include. Necessary to obtain a properly shaped (but empty) data frame if there are no records.

    Returns
    -------
    pd.DataFrame
        The data frame
    """
    if columns is None:
        columns = list(next(iter(data)).keys()) if data else []
    else:
        columns = list(columns)

    df_container: dict[str, list[Any]] = {col: [] for col in columns}
    for row in data:
        for col in columns:
            df_container[col].append(row[col])
    return pd.DataFrame(df_container, columns=columns)
