# app/services/charts.py
#
# Time-bucketed series for the chart endpoints, aggregated with pandas.

from datetime import datetime
from typing import Iterable, List, Tuple

import pandas as pd

from app.services.dates import bucket_label, bucket_start


def income_expense_frame(rows: Iterable[Tuple[datetime, float, bool]], bucket: str) -> pd.DataFrame:
    """
    Sum (created_at, amount, is_income) rows per bucket.

    Returns a frame indexed by bucket start with income, expense and balance
    columns, sorted by time. Empty input gives an empty frame.
    """
    df = pd.DataFrame(list(rows), columns=["created_at", "amount", "is_income"])
    if df.empty:
        return pd.DataFrame(columns=["income", "expense", "balance"])

    df["bucket"] = [bucket_start(ts, bucket) for ts in df["created_at"]]
    df["income"] = df["amount"].where(df["is_income"].astype(bool), 0.0)
    df["expense"] = df["amount"].where(~df["is_income"].astype(bool), 0.0)

    grouped = df.groupby("bucket")[["income", "expense"]].sum().sort_index()
    grouped["balance"] = grouped["income"] - grouped["expense"]
    return grouped


def labelled_series(frame: pd.DataFrame, bucket: str) -> List[dict]:
    return [
        {
            "date": bucket_label(ts.to_pydatetime() if hasattr(ts, "to_pydatetime") else ts, bucket),
            "income": float(row["income"]),
            "expense": float(row["expense"]),
            "balance": float(row["balance"]),
        }
        for ts, row in frame.iterrows()
    ]


def epoch_series(frame: pd.DataFrame, column: str) -> List[dict]:
    """[{x: unix seconds of the bucket, y: value}] for one column."""
    out = []
    for ts, value in frame[column].items():
        moment = ts.to_pydatetime() if hasattr(ts, "to_pydatetime") else ts
        out.append({"x": int(moment.timestamp()), "y": float(value)})
    return out
