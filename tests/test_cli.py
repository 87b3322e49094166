"""Tests for CLI commands"""

import asyncio
from unittest.mock import patch

import pytest
import structlog
from typer.testing import CliRunner

from cli.main import app
from jobengine.config.settings import JobStoreType, Settings
from jobengine.v1.core.security import TenantContext
from jobengine.v1.jobs.models import JobStatus
from jobengine.v1.jobs.schemas import JobCreate
from jobengine.v1.jobs.service import build_job_service


@pytest.fixture(autouse=True)
def uncached_loggers():
    """Loggers bound inside CliRunner.invoke must not outlive its captured stdout"""
    cached = structlog.get_config()["cache_logger_on_first_use"]
    structlog.configure(cache_logger_on_first_use=False)
    with patch("cli.main.setup_logging"):
        yield
    structlog.configure(cache_logger_on_first_use=cached)


@pytest.fixture
def runner():
    """CLI test runner"""
    return CliRunner()


@pytest.fixture
def cli_service():
    """In-memory job service handed to every CLI command"""
    service = build_job_service(Settings(job_store=JobStoreType.MEMORY))
    with patch("cli.main.build_job_service", return_value=service):
        yield service


@pytest.fixture
def memory_settings():
    with patch("cli.main.settings", Settings(job_store=JobStoreType.MEMORY)):
        yield


def _create(service, tenant_id, **fields):
    return asyncio.run(
        service.create_job(TenantContext(tenant_id=tenant_id), JobCreate(**fields))
    )


class TestDispatch:
    def test_dispatch_once(self, runner, cli_service, memory_settings):
        job = _create(cli_service, "tenant-a", type="maintenance_cleanup")

        result = runner.invoke(app, ["dispatch", "--once"])

        assert result.exit_code == 0
        assert "Processed 1 job(s)" in result.stdout
        done = asyncio.run(
            cli_service.find_one(TenantContext(tenant_id="tenant-a"), job.id)
        )
        assert done.status == JobStatus.COMPLETED

    def test_dispatch_once_respects_batch_size(
        self, runner, cli_service, memory_settings
    ):
        for _ in range(3):
            _create(cli_service, "tenant-a", type="maintenance_cleanup")

        result = runner.invoke(app, ["dispatch", "--once", "--batch-size", "2"])

        assert result.exit_code == 0
        assert "Processed 2 job(s)" in result.stdout

    def test_dispatch_rejects_zero_batch(self, runner, cli_service, memory_settings):
        result = runner.invoke(app, ["dispatch", "--once", "-b", "0"])

        assert result.exit_code != 0


class TestCleanup:
    def test_cleanup(self, runner, cli_service, memory_settings):
        result = runner.invoke(app, ["cleanup", "--retention-days", "7"])

        assert result.exit_code == 0
        assert "Deleted 0 job(s)" in result.stdout

    def test_cleanup_negative_retention(self, runner, cli_service, memory_settings):
        result = runner.invoke(app, ["cleanup", "-r", "-1"])

        assert result.exit_code == 1
        assert "retention_days must be non-negative" in result.stdout


class TestStats:
    def test_stats(self, runner, cli_service, memory_settings):
        _create(cli_service, "tenant-a", type="export_csv")
        _create(cli_service, "tenant-b", type="sync_orders")

        result = runner.invoke(app, ["stats", "tenant-a"])

        assert result.exit_code == 0
        assert "Jobs by Status" in result.stdout
        assert "export_csv" in result.stdout
        assert "sync_orders" not in result.stdout

    def test_stats_requires_tenant(self, runner, cli_service, memory_settings):
        result = runner.invoke(app, ["stats"])

        assert result.exit_code != 0


class TestInitDb:
    def test_init_db_requires_database_store(self, runner, memory_settings):
        result = runner.invoke(app, ["init-db"])

        assert result.exit_code == 1
        assert "nothing to initialize" in result.stdout

    def test_init_db_creates_tables(self, runner, tmp_path):
        settings = Settings(
            job_store=JobStoreType.DATABASE,
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}",
        )

        with patch("cli.main.settings", settings), patch(
            "jobengine.infra.database._database", None
        ):
            result = runner.invoke(app, ["init-db"])

        assert result.exit_code == 0
        assert "Job tables created" in result.stdout
        assert (tmp_path / "cli.db").exists()
