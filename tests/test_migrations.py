from pathlib import Path

import allure
from sqlalchemy import inspect

from media_jobs.orchestrator.repository import JobRepository

pytestmark = [
    allure.epic("Job Store"),
    allure.feature("Schema Migrations"),
]


def test_alembic_schema_is_initialized_to_head(tmp_path: Path) -> None:
    repository = JobRepository(tmp_path / "migrations.db")
    assert repository.schema_revision() is None

    repository.init_schema()
    repository.init_schema()

    assert repository.schema_revision() == "20261016_0001"

    inspector = inspect(repository.engine)
    assert "generation_jobs" in inspector.get_table_names()
    columns = {column["name"] for column in inspector.get_columns("generation_jobs")}
    assert {
        "job_id",
        "kind",
        "status",
        "input_json",
        "progress",
        "result_url",
        "error",
        "error_kind",
        "created_at",
        "updated_at",
        "completed_at",
    } <= columns
    indexes = {index["name"] for index in inspector.get_indexes("generation_jobs")}
    assert "idx_generation_jobs_status_updated" in indexes
    repository.close()
