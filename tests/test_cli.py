from __future__ import annotations

import json
import re
from pathlib import Path

import allure
import pytest
from click.testing import CliRunner, Result

from media_jobs.main import media_jobs

pytestmark = [
    allure.epic("Operations"),
    allure.feature("CLI"),
]


@pytest.fixture()
def cli_env(tmp_path: Path) -> dict[str, str]:
    return {
        "MEDIA_JOBS_BLOB_DIR": str(tmp_path / "blobs"),
        "MEDIA_JOBS_PUBLIC_BASE_URL": "http://media.test/files",
    }


def _invoke(args: list[str], env: dict[str, str]) -> Result:
    result = CliRunner().invoke(media_jobs, args, env=env)
    assert result.exit_code == 0, result.output
    return result


def test_submit_wait_runs_image_job_with_echo_provider(
    tmp_path: Path,
    cli_env: dict[str, str],
) -> None:
    db_path = tmp_path / "cli.db"

    result = _invoke(
        [
            "jobs",
            "submit",
            "--db-path",
            str(db_path),
            "--kind",
            "image",
            "--prompt",
            "a red fox",
            "--param",
            "image_size=2K",
            "--wait",
            "--provider",
            "echo",
        ],
        cli_env,
    )

    assert "Status: completed" in result.output
    assert "Progress: 100" in result.output
    assert "Result: http://media.test/files/" in result.output
    assert len(list((tmp_path / "blobs").iterdir())) == 1


def test_submit_then_run_status_and_list(tmp_path: Path, cli_env: dict[str, str]) -> None:
    db_path = str(tmp_path / "cli.db")

    created = _invoke(
        ["jobs", "submit", "--db-path", db_path, "--kind", "video", "--prompt", "waves"],
        cli_env,
    )
    match = re.search(r"job_id=(\S+) kind=video status=pending", created.output)
    assert match is not None
    job_id = match.group(1)

    ran = _invoke(["jobs", "run", "--db-path", db_path, job_id, "--provider", "echo"], cli_env)
    assert "Status: completed" in ran.output

    status = _invoke(["jobs", "status", "--db-path", db_path, job_id], cli_env)
    assert f"Job: {job_id}" in status.output
    assert "Kind: video" in status.output

    listed = _invoke(["jobs", "list", "--db-path", db_path, "--status", "completed"], cli_env)
    assert "Jobs: 1" in listed.output
    assert job_id in listed.output

    missing = _invoke(["jobs", "status", "--db-path", db_path, "nope"], cli_env)
    assert "Job not found: nope" in missing.output


def test_batch_prints_one_outcome_per_prompt(tmp_path: Path, cli_env: dict[str, str]) -> None:
    result = _invoke(
        [
            "jobs",
            "batch",
            "--db-path",
            str(tmp_path / "cli.db"),
            "--kind",
            "speech",
            "--prompt",
            "first line",
            "--prompt",
            "second line",
            "--concurrency",
            "1",
            "--provider",
            "echo",
        ],
        cli_env,
    )

    lines = result.output.strip().splitlines()
    assert lines[0] == "Batch: total=2 succeeded=2"
    outcomes = [json.loads(line) for line in lines[1:]]
    assert [outcome["id"] for outcome in outcomes] == ["1", "2"]
    assert all(outcome["result"].startswith("http://media.test/files/") for outcome in outcomes)


def test_prune_dry_run_counts_terminal_jobs(tmp_path: Path, cli_env: dict[str, str]) -> None:
    db_path = str(tmp_path / "cli.db")
    _invoke(
        [
            "jobs",
            "submit",
            "--db-path",
            db_path,
            "--kind",
            "image",
            "--prompt",
            "x",
            "--wait",
            "--provider",
            "echo",
        ],
        cli_env,
    )

    dry = _invoke(
        ["jobs", "prune", "--db-path", db_path, "--older-than-days", "0", "--dry-run"],
        cli_env,
    )
    assert "Would delete 1 terminal job(s)" in dry.output

    pruned = _invoke(["jobs", "prune", "--db-path", db_path, "--older-than-days", "0"], cli_env)
    assert "Deleted 1 terminal job(s)" in pruned.output


def test_keys_status_lists_pools(tmp_path: Path, cli_env: dict[str, str]) -> None:
    result = _invoke(["keys", "status", "--db-path", str(tmp_path / "cli.db")], cli_env)

    assert "Credential pools:" in result.output
    assert "  echo: total=1 available=1 quarantined=0" in result.output


def test_invalid_param_is_reported_as_usage_error(tmp_path: Path, cli_env: dict[str, str]) -> None:
    result = CliRunner().invoke(
        media_jobs,
        [
            "jobs",
            "submit",
            "--db-path",
            str(tmp_path / "cli.db"),
            "--kind",
            "image",
            "--prompt",
            "x",
            "--param",
            "no-equals-sign",
        ],
        env=cli_env,
    )

    assert result.exit_code != 0
    assert "Invalid --param" in result.output
