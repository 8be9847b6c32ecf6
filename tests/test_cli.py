"""Unit tests for the PySpSync CLI commands."""

import json
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from pyspsync.cli import main, write_github_outputs
from pyspsync.config import Config
from pyspsync.sync import SyncReport

SETTINGS = (
    "SPSYNC_ACCESS_TOKEN",
    "SPSYNC_DRIVE_ID",
    "SPSYNC_FOLDER_ID",
    "SPSYNC_DELAY",
    "SPSYNC_UPLOAD_MAX_RETRIES",
    "SPSYNC_UPLOAD_BASE_DELAY",
    "GITHUB_OUTPUT",
)


@pytest.fixture
def runner():
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def clean_config(monkeypatch):
    """Clear the environment and swap in a fresh config."""
    for name in SETTINGS:
        monkeypatch.delenv(name, raising=False)
    fresh = Config()
    with patch("pyspsync.cli.config", fresh):
        yield fresh


@pytest.fixture
def good_report():
    return SyncReport(uploaded_count=2, uploaded_paths=("a/one.txt", "a/b/two.txt"))


@pytest.fixture
def failed_report():
    return SyncReport(
        uploaded_count=1,
        uploaded_paths=("a/b/two.txt",),
        failed_count=1,
        failed_paths=("/src/a/one.txt",),
        error_message="Upload Error: Some uploads failed. Check the logs for more details.",
    )


class TestMainGroup:
    """Tests for the main CLI group."""

    def test_main_help(self, runner):
        """Test main help shows all commands."""
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "PySpSync" in result.output
        assert "--token" in result.output
        assert "upload" in result.output
        assert "scan" in result.output

    def test_upload_help(self, runner):
        """Test upload help lists its options."""
        result = runner.invoke(main, ["upload", "--help"])
        assert result.exit_code == 0
        for option in ("--drive-id", "--folder-id", "--delay", "--github-output"):
            assert option in result.output


class TestUploadCommand:
    """Tests for the upload command."""

    def test_missing_settings(self, runner, clean_config, tmp_path):
        """Test that missing drive settings exit with status 2."""
        result = runner.invoke(main, ["--token", "tok", "upload", str(tmp_path)])

        assert result.exit_code == 2
        assert "Missing required setting(s)" in result.output
        assert "drive_id" in result.output
        assert "folder_id" in result.output

    def test_missing_token(self, runner, clean_config, tmp_path):
        """Test that a missing token is reported."""
        result = runner.invoke(
            main, ["upload", str(tmp_path), "-d", "drive", "-f", "folder"]
        )

        assert result.exit_code == 2
        assert "access_token" in result.output

    def test_successful_upload(self, runner, clean_config, good_report, tmp_path):
        """Test a successful run and the arguments passed to the engine."""
        with patch(
            "pyspsync.cli._run_upload", new=AsyncMock(return_value=good_report)
        ) as mock_run:
            result = runner.invoke(
                main,
                [
                    "--token",
                    "tok",
                    "upload",
                    str(tmp_path),
                    "--drive-id",
                    "drive",
                    "--folder-id",
                    "folder",
                    "--delay",
                    "250",
                    "--max-retries",
                    "4",
                ],
            )

        assert result.exit_code == 0
        assert "Uploaded 2 file(s)" in result.output
        token, path, location, delay_ms, policy, _ = mock_run.await_args.args
        assert token == "tok"
        assert path == tmp_path
        assert (location.drive_id, location.folder_id) == ("drive", "folder")
        assert delay_ms == 250
        assert policy.max_retries == 4
        assert policy.base_delay_ms == 1000

    def test_settings_from_environment(
        self, runner, monkeypatch, good_report, tmp_path
    ):
        """Test that drive, folder and delay come from the environment."""
        monkeypatch.setenv("SPSYNC_ACCESS_TOKEN", "env-token")
        monkeypatch.setenv("SPSYNC_DRIVE_ID", "env-drive")
        monkeypatch.setenv("SPSYNC_FOLDER_ID", "env-folder")
        monkeypatch.setenv("SPSYNC_DELAY", "50")
        monkeypatch.delenv("GITHUB_OUTPUT", raising=False)

        with patch("pyspsync.cli.config", Config()), patch(
            "pyspsync.cli._run_upload", new=AsyncMock(return_value=good_report)
        ) as mock_run:
            result = runner.invoke(main, ["upload", str(tmp_path)])

        assert result.exit_code == 0
        token, _, location, delay_ms, _, _ = mock_run.await_args.args
        assert token == "env-token"
        assert location.drive_id == "env-drive"
        assert location.folder_id == "env-folder"
        assert delay_ms == 50

    def test_failures_exit_nonzero(
        self, runner, clean_config, failed_report, tmp_path
    ):
        """Test that failed uploads are listed and exit with status 1."""
        with patch(
            "pyspsync.cli._run_upload", new=AsyncMock(return_value=failed_report)
        ):
            result = runner.invoke(
                main,
                ["-t", "tok", "upload", str(tmp_path), "-d", "drive", "-f", "folder"],
            )

        assert result.exit_code == 1
        assert "/src/a/one.txt" in result.output
        assert "Some uploads failed" in result.output

    def test_json_output(self, runner, clean_config, good_report, tmp_path):
        """Test the JSON report."""
        with patch(
            "pyspsync.cli._run_upload", new=AsyncMock(return_value=good_report)
        ):
            result = runner.invoke(
                main,
                [
                    "-t",
                    "tok",
                    "--json",
                    "upload",
                    str(tmp_path),
                    "-d",
                    "drive",
                    "-f",
                    "folder",
                ],
            )

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["uploads"] == 2
        assert data["upload_list"] == ["a/one.txt", "a/b/two.txt"]

    def test_github_output_file(
        self, runner, clean_config, failed_report, tmp_path
    ):
        """Test that workflow outputs are appended to the given file."""
        output_file = tmp_path / "github_output"
        with patch(
            "pyspsync.cli._run_upload", new=AsyncMock(return_value=failed_report)
        ):
            result = runner.invoke(
                main,
                [
                    "-t",
                    "tok",
                    "upload",
                    str(tmp_path),
                    "-d",
                    "drive",
                    "-f",
                    "folder",
                    "--github-output",
                    str(output_file),
                ],
            )

        assert result.exit_code == 1
        lines = output_file.read_text().splitlines()
        assert "upload_successes=1" in lines
        assert "upload_list=a/b/two.txt" in lines
        assert "upload_failures=1" in lines
        assert "upload_failed_list=/src/a/one.txt" in lines
        assert "upload_failed_locked=0" in lines
        assert (
            "error_message=Upload Error: Some uploads failed. "
            "Check the logs for more details." in lines
        )


class TestWriteGithubOutputs:
    """Tests for write_github_outputs."""

    def test_appends(self, tmp_path, good_report):
        """Test that existing content is kept."""
        target = tmp_path / "out"
        target.write_text("previous=1\n")

        write_github_outputs(target, good_report)

        lines = target.read_text().splitlines()
        assert lines[0] == "previous=1"
        assert "upload_successes=2" in lines
        assert not any(line.startswith("error_message=") for line in lines)


class TestScanCommand:
    """Tests for the scan command."""

    def test_scan_lists_tree(self, runner, source_tree):
        """Test that scan prints folders, files and a summary."""
        result = runner.invoke(main, ["scan", str(source_tree)])

        assert result.exit_code == 0
        assert "a/b/" in result.output
        assert "a/one.txt" in result.output
        assert "2 folder(s), 2 file(s)" in result.output

    def test_scan_json(self, runner, source_tree):
        """Test the JSON form of scan."""
        result = runner.invoke(main, ["--json", "scan", str(source_tree)])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["folders"] == ["a", "a/b"]
        assert data["files"] == ["a/b/two.txt", "a/one.txt"]
        assert data["total_size"] == 6

    def test_scan_names_with_brackets(self, runner, tmp_path):
        """Test that bracketed names are printed literally, not as markup."""
        (tmp_path / "[").mkdir()
        (tmp_path / "[" / "x]").write_text("x")
        (tmp_path / "[red]notes.txt").write_text("x")

        result = runner.invoke(main, ["scan", str(tmp_path)])

        assert result.exit_code == 0
        assert "[/x]" in result.output
        assert "[red]notes.txt" in result.output

    def test_failed_paths_with_brackets(self, runner, clean_config, tmp_path):
        """Test that failed paths are printed literally in the report."""
        report = SyncReport(failed_count=1, failed_paths=("/src/[/x]",))
        with patch("pyspsync.cli._run_upload", new=AsyncMock(return_value=report)):
            result = runner.invoke(
                main,
                ["-t", "tok", "upload", str(tmp_path), "-d", "drive", "-f", "folder"],
            )

        assert result.exit_code == 1
        assert "/src/[/x]" in result.output

    def test_scan_empty(self, runner, tmp_path):
        """Test that an empty directory is reported as an error."""
        result = runner.invoke(main, ["scan", str(tmp_path)])

        assert result.exit_code == 1
        assert "No upload items found" in result.output
