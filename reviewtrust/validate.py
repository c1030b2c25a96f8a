import re

import pandas as pd

from .constants import F_BUSINESS_ID, F_RATING, F_REVIEW_ID, F_USER_ID

E164_PATTERN = re.compile(r"^\+[1-9][0-9]{1,14}$")


def is_valid_phone(phone: str) -> bool:
    """Check a phone number against E.164 (e.g. +251911234567)."""
    return bool(phone) and bool(E164_PATTERN.match(phone))


def basic_validations(df: pd.DataFrame) -> pd.DataFrame:
    """Validate and normalise a review import DataFrame.

    Rows with a rating outside 1..5 (or no rating) cannot be stored under the
    reviews check constraint, so they are dropped rather than failing the run.

    Args:
        df: pandas.DataFrame loaded from source CSV with normalized column names.

    Returns:
        The filtered DataFrame.

    Raises:
        ValueError: if required key columns are missing.
    """
    required = [F_REVIEW_ID, F_USER_ID, F_BUSINESS_ID, F_RATING]
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")
    ratings = pd.to_numeric(df[F_RATING], errors="coerce")
    df = df.assign(**{F_RATING: ratings})
    df.loc[~df[F_RATING].between(1, 5), F_RATING] = None
    df = df.dropna(subset=[F_REVIEW_ID, F_USER_ID, F_BUSINESS_ID, F_RATING])
    return df.assign(**{F_RATING: df[F_RATING].round().astype(int)})
