"""Database models for GrailSeeker.

All SQLModel models should be defined here and imported in db/__init__.py.

Models follow these patterns:
- Use singular nouns for classes, plural snake_case table names
- Use uuid.uuid4().hex for IDs (32 character hex strings)
- Index the columns lookups filter on
"""

from __future__ import annotations

import time
import uuid

from sqlalchemy import Column, Index, Text
from sqlmodel import Field, SQLModel

metadata = SQLModel.metadata


class ScanCorrection(SQLModel, table=True):
    """A human-confirmed answer for a normalized scan input.

    Rows are append-only: a reclassification inserts a new row and lookups
    take the most recent one for a key.
    """

    __tablename__ = "scan_corrections"  # type: ignore[assignment]

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    normalized_input: str
    input_text: str = Field(sa_column=Column(Text, nullable=False))
    ocr_text: str | None = Field(default=None, sa_column=Column(Text, nullable=True))

    # Selected catalog item
    selected_comicvine_id: str
    selected_resource: str = Field(default="issue")  # "issue" or "volume"
    selected_volume_id: str | None = Field(default=None)
    selected_title: str
    selected_issue: str | None = Field(default=None)
    selected_year: int | None = Field(default=None)
    selected_publisher: str | None = Field(default=None)
    selected_cover_url: str | None = Field(default=None)

    original_confidence: float | None = Field(default=None)
    request_id: str | None = Field(default=None)  # trace id of the originating resolution
    user_id: str | None = Field(default=None)

    # Float epoch seconds so corrections written within one second still order
    created_at: float = Field(default_factory=time.time)

    __table_args__ = (
        Index("idx_scan_corrections_key_created", "normalized_input", "created_at"),
    )
