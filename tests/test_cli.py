"""Tests for the maskclone CLI — option/env layering and exit codes."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from maskclone.cli import ENV_PREFIX, _env, app, build_config, flags_config
from maskclone.config.models import DEFAULT_INSTANCE_CLASS, MaskConfig
from maskclone.errors import ConfigurationError

runner = CliRunner()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    import os

    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key)


# ── TestFlagsConfig ──────────────────────────────────────────────────────


class TestFlagsConfig:
    def test_env_name(self):
        assert _env("db-instance-class") == "MASKCLONE_DB_INSTANCE_CLASS"

    def test_unset_values_are_empty(self):
        cfg = flags_config({})
        assert cfg == MaskConfig()

    def test_values_mapped(self):
        cfg = flags_config({
            "src_db_cluster": "prod",
            "db_instance_class": "db.r6g.large",
            "security_group_ids": "sg-1,sg-2",
            "publicly_accessible": True,
            "enable_export_task": True,
            "export_task_s3_bucket": "exports",
            "export_task_export_only": "db.users",
        })
        assert cfg.source_db_cluster_identifier == "prod"
        assert cfg.temp_cluster.db_instance_class == "db.r6g.large"
        assert cfg.temp_cluster.security_group_id_list == ["sg-1", "sg-2"]
        assert cfg.temp_cluster.publicly_accessible
        assert cfg.enable_export_task
        assert cfg.export_task.s3_bucket == "exports"
        assert cfg.export_task.export_only_list == ["db.users"]


# ── TestBuildConfig ──────────────────────────────────────────────────────


class TestBuildConfig:
    def test_defaults_without_file(self):
        cfg = build_config(None, MaskConfig(database="app"))
        assert cfg.temp_cluster.db_instance_class == DEFAULT_INSTANCE_CLASS
        assert cfg.database == "app"

    def test_flags_override_file(self, tmp_path):
        path = tmp_path / "mask.yaml"
        path.write_text("database: from-file\nsql_file: file.sql\n")
        cfg = build_config(str(path), MaskConfig(database="from-flag"))
        assert cfg.database == "from-flag"
        assert cfg.sql_file == "file.sql"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            build_config(str(tmp_path / "absent.yaml"), MaskConfig())


# ── TestRunCommand ───────────────────────────────────────────────────────


class TestRunCommand:
    @patch("maskclone.workflow.mask_snapshot.run_mask_workflow")
    def test_success(self, mock_run):
        mock_run.return_value = 0
        result = runner.invoke(app, ["run", "--sql-file", "mask.sql", "prod"])
        assert result.exit_code == 0
        cfg, source = mock_run.call_args.args
        assert source == "prod"
        assert cfg.sql_file == "mask.sql"

    @patch("maskclone.workflow.mask_snapshot.run_mask_workflow")
    def test_exit_code_propagated(self, mock_run):
        mock_run.return_value = 3
        result = runner.invoke(app, ["run", "prod"])
        assert result.exit_code == 3

    @patch("maskclone.workflow.mask_snapshot.run_mask_workflow")
    def test_env_vars_read(self, mock_run):
        mock_run.return_value = 0
        result = runner.invoke(
            app, ["run"],
            env={"MASKCLONE_SRC_DB_CLUSTER": "from-env", "MASKCLONE_INTERACTIVE": "true"},
        )
        assert result.exit_code == 0
        cfg, source = mock_run.call_args.args
        assert source == ""
        assert cfg.source_db_cluster_identifier == "from-env"
        assert cfg.interactive

    @patch("maskclone.workflow.mask_snapshot.run_mask_workflow")
    def test_profile_and_region_passed(self, mock_run):
        mock_run.return_value = 0
        runner.invoke(app, ["run", "--profile", "dev", "--region", "eu-west-1", "prod"])
        kwargs = mock_run.call_args.kwargs
        assert kwargs["profile"] == "dev"
        assert kwargs["region"] == "eu-west-1"
        assert kwargs["token"] is not None

    @patch("maskclone.workflow.mask_snapshot.run_mask_workflow")
    def test_bad_config_exits_before_run(self, mock_run, tmp_path):
        path = tmp_path / "mask.yaml"
        path.write_text('password: {{ must_env "MASKCLONE_TEST_UNSET" }}\n')
        result = runner.invoke(app, ["run", "--config", str(path), "prod"])
        assert result.exit_code == 1
        mock_run.assert_not_called()
