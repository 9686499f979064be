"""SQLModel ORM tables for job storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Text
from sqlmodel import Field, SQLModel


class GenerationJob(SQLModel, table=True):
    __tablename__ = "generation_jobs"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_generation_jobs_status_updated", "status", "updated_at"),
    )

    job_id: str = Field(primary_key=True)
    kind: str = Field(index=True)
    status: str = Field(index=True)
    input_json: str = Field(sa_column=Column(Text, nullable=False))
    progress: int = Field(default=0)
    result_url: str | None = Field(default=None, sa_column=Column(Text))
    error: str | None = Field(default=None, sa_column=Column(Text))
    error_kind: str | None = Field(default=None, index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
