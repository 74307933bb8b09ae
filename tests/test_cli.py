"""
Tests for the feedsync CLI.
"""

import asyncio
from pathlib import Path

import pytest
from typer.testing import CliRunner

from feedsync import __version__
from feedsync.catalog.store import DuckDBCatalogStore
from feedsync.cli.main import app
from feedsync.cli.worker import serve
from feedsync.runtime import initialize

runner = CliRunner()

PROJECT_CONFIG = """
source:
  host: ftp.example.com
  username: feed
  password: secret
feed:
  file_name: TobaccoData.xml
  work_dir: staging
queue:
  backend: memory
catalog:
  path: catalog.duckdb
worker:
  poll_interval_s: 0.01
logging:
  level: WARNING
  file_enabled: false
  console_type: plain
"""


@pytest.fixture
def project(tmp_path: Path) -> Path:
    project_dir = tmp_path / "project"
    project_dir.mkdir()
    (project_dir / "config.yaml").write_text(PROJECT_CONFIG, encoding="utf-8")
    return project_dir


class TestVersion:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"feedsync version {__version__}" in result.stdout

    def test_no_command_shows_help(self):
        result = runner.invoke(app, [])
        assert result.exit_code == 0
        assert "process" in result.stdout


class TestProcess:
    def test_process_local_file(self, project: Path, feed_file: Path):
        result = runner.invoke(app, ["process", str(feed_file), "--project-dir", str(project)])

        assert result.exit_code == 0, result.output
        assert "created" in result.stdout
        assert feed_file.exists()

        store = DuckDBCatalogStore(str(project / "catalog.duckdb"))
        try:
            assert store.count_products() == 3
        finally:
            store.close()

    def test_malformed_file_exits_with_error(self, project: Path, tmp_path: Path):
        bad = tmp_path / "bad.xml"
        bad.write_text("<TobaccoData><Groups>", encoding="utf-8")

        result = runner.invoke(app, ["process", str(bad), "--project-dir", str(project)])

        assert result.exit_code == 1
        assert bad.exists()

    def test_missing_config(self, tmp_path: Path, feed_file: Path):
        result = runner.invoke(app, ["process", str(feed_file), "--project-dir", str(tmp_path / "nowhere")])
        assert result.exit_code == 1


class TestEnqueue:
    def test_enqueue_download(self, project: Path):
        result = runner.invoke(app, ["enqueue", "download", "--project-dir", str(project)])
        assert result.exit_code == 0, result.output
        assert "Enqueued" in result.stdout
        assert "download" in result.stdout

    def test_unknown_kind_rejected(self, project: Path):
        result = runner.invoke(app, ["enqueue", "reindex", "--project-dir", str(project)])
        assert result.exit_code != 0

    def test_jobs_empty(self, project: Path):
        result = runner.invoke(app, ["jobs", "--project-dir", str(project)])
        assert result.exit_code == 0, result.output
        assert "No jobs" in result.stdout


class TestServe:
    @pytest.mark.asyncio
    async def test_serve_registers_download_and_stops(self, project: Path):
        runtime = initialize(project)
        queue = runtime.queue
        stop = asyncio.Event()

        task = asyncio.create_task(serve(runtime, stop))
        await asyncio.sleep(0.05)
        repeatables = await queue.list_repeatable("download")
        stop.set()
        await asyncio.wait_for(task, timeout=5)

        assert [r.pattern for r in repeatables] == ["0 */12 * * *"]
