from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, DateTime, func
from .database import Base
from .constants import TBL_IMPORT_RUNS

class ImportRun(Base):
    __tablename__ = TBL_IMPORT_RUNS
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_path: Mapped[str] = mapped_column(String, nullable=False)
    total_rows: Mapped[int] = mapped_column(Integer, nullable=False)
    loaded_rows: Mapped[int] = mapped_column(Integer, nullable=False)
    file_hash: Mapped[str] = mapped_column(String, nullable=False, index=True)  # SHA256 of the CSV
    created_at: Mapped["DateTime"] = mapped_column(DateTime(timezone=True), server_default=func.now())
