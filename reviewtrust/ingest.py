import argparse
import hashlib

import pandas as pd
import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from .database import SessionLocal, engine
from .log import configure_logging
from .models import Base, Business, Profile, Review
from .metadata import ImportRun
from .validate import basic_validations
from .constants import (
    RENAME_MAP,
    F_REVIEW_ID,
    F_USER_ID,
    F_USER_NAME,
    F_EMAIL,
    F_BUSINESS_ID,
    F_BUSINESS_NAME,
    F_RATING,
    F_COMMENT,
    F_CREATED_AT,
    F_SOURCE_PATH,
    F_TOTAL_ROWS,
    F_LOADED_ROWS,
    F_FILE_HASH,
)

logger = structlog.get_logger(__name__)


def compute_file_hash(file_path: str) -> str:
    h = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def load_dataframe(path: str) -> pd.DataFrame:
    df = pd.read_csv(path)
    df = df.rename(columns=RENAME_MAP)
    for key in (F_REVIEW_ID, F_USER_ID, F_BUSINESS_ID):
        if key in df.columns:
            df[key] = df[key].astype("string")
    if F_CREATED_AT in df.columns:
        df[F_CREATED_AT] = pd.to_datetime(df[F_CREATED_AT], errors="coerce", utc=True)
    return df


def _clean(rec: dict) -> dict:
    out = {}
    for k, v in rec.items():
        if isinstance(v, pd.Timestamp):
            v = v.to_pydatetime()
        out[k] = None if pd.isna(v) else v
    return out


def upsert_dimension(session: Session, model, key_field: str, df: pd.DataFrame, columns: dict[str, str]) -> int:
    """Batch insert rows of a dimension table (profiles, businesses) not yet present.

    Args:
        session: SQLAlchemy Session.
        model: ORM class keyed by `id`.
        key_field: DataFrame column holding the primary key.
        df: source rows.
        columns: DataFrame column -> model attribute for the other fields.

    Returns:
        Number of rows added.
    """
    existing_keys = set(session.execute(select(model.id)).scalars())
    fields = [c for c in columns if c in df.columns]
    to_insert = df[[key_field] + fields].drop_duplicates(subset=[key_field])
    to_insert = to_insert[~to_insert[key_field].isin(existing_keys)]
    objects = []
    for rec in to_insert.to_dict("records"):
        rec = _clean(rec)
        attrs = {columns[c]: rec[c] for c in fields}
        objects.append(model(id=rec[key_field], **attrs))
    if objects:
        session.add_all(objects)
    return len(objects)


def ingest_csv(db: Session, csv_path: str) -> ImportRun:
    """Load profiles, businesses and reviews from a review export CSV.

    Rows already present (by primary key) are skipped, so re-running an import
    is harmless. Each imported business gets a placeholder business profile
    with the same id as its owner.
    """
    file_hash = compute_file_hash(csv_path)
    df = load_dataframe(csv_path)
    total_rows = len(df)
    df = basic_validations(df)

    users = upsert_dimension(db, Profile, F_USER_ID, df, {F_USER_NAME: "name", F_EMAIL: "email"})
    db.flush()

    # Imported businesses are owned by a profile of the same id until claimed
    owners = df[[F_BUSINESS_ID]].drop_duplicates()
    upsert_dimension(db, Profile, F_BUSINESS_ID, owners.assign(role="business"), {"role": "role"})
    biz = df.assign(business_owner_id=df[F_BUSINESS_ID])
    if F_BUSINESS_NAME not in biz.columns:
        biz = biz.assign(**{F_BUSINESS_NAME: biz[F_BUSINESS_ID]})
    biz[F_BUSINESS_NAME] = biz[F_BUSINESS_NAME].fillna(biz[F_BUSINESS_ID])
    businesses = upsert_dimension(
        db, Business, F_BUSINESS_ID, biz,
        {F_BUSINESS_NAME: "business_name", "business_owner_id": "business_owner_id"},
    )
    db.flush()

    # --- Insert reviews (append-only, one per reviewer and business) ---
    existing_review_ids = set(db.execute(select(Review.id)).scalars())
    existing_pairs = set(db.execute(select(Review.reviewer_id, Review.reviewee_id)).tuples())
    review_df = df.drop_duplicates(subset=[F_REVIEW_ID])
    review_df = review_df[~review_df[F_REVIEW_ID].isin(existing_review_ids)]
    review_df = review_df.drop_duplicates(subset=[F_USER_ID, F_BUSINESS_ID])

    review_objs = []
    for rec in review_df.to_dict("records"):
        rec = _clean(rec)
        if (rec[F_USER_ID], rec[F_BUSINESS_ID]) in existing_pairs:
            continue
        attrs = {
            "id": rec[F_REVIEW_ID],
            "reviewer_id": rec[F_USER_ID],
            "reviewee_id": rec[F_BUSINESS_ID],
            "rating": int(rec[F_RATING]),
            "comment": rec.get(F_COMMENT),
        }
        if rec.get(F_CREATED_AT) is not None:
            attrs["created_at"] = rec[F_CREATED_AT]
        review_objs.append(Review(**attrs))

    if review_objs:
        db.add_all(review_objs)
        db.flush()
        counts = pd.Series([r.reviewee_id for r in review_objs]).value_counts()
        for business in db.execute(select(Business).where(Business.id.in_(list(counts.index)))).scalars():
            business.rating_count = (business.rating_count or 0) + int(counts[business.id])

    run_row = ImportRun(
        **{
            F_SOURCE_PATH: csv_path,
            F_TOTAL_ROWS: total_rows,
            F_LOADED_ROWS: len(review_objs),
            F_FILE_HASH: file_hash,
        }
    )
    db.add(run_row)
    db.commit()
    db.refresh(run_row)
    logger.info(
        "ingest_complete",
        source=csv_path,
        rows_in=total_rows,
        profiles_added=users,
        businesses_added=businesses,
        reviews_loaded=len(review_objs),
    )
    return run_row


def run(csv_path: str) -> ImportRun:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        return ingest_csv(session, csv_path=csv_path)


if __name__ == "__main__":
    configure_logging()
    parser = argparse.ArgumentParser(description="Seed profiles, businesses and reviews from a CSV export")
    parser.add_argument("--csv", required=True, help="Path to reviews CSV file")
    args = parser.parse_args()
    run(args.csv)
