"""
Tests for uniform_config: YAML loading, environment overrides, validation,
and the config -> kernel bridges.
"""

import pytest
import yaml

from uniform_config import (
    CONFIG_FILE_ENV,
    DATABASE_URL_ENV,
    KernelSettings,
    get_active_settings,
    load_settings,
    parse_settings,
)
from uniform_config.bridges import build_kernel, build_report_store, build_stock_ledger
from uniform_config.loader import load_yaml_file


def _write(path, data):
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:
    def test_packaged_defaults(self):
        settings = get_active_settings(environ={})

        assert settings == KernelSettings()
        assert settings.stock_retry_attempts == 5
        assert settings.prune_orphan_reports is True

    def test_log_level_number(self):
        assert KernelSettings(log_level="DEBUG").log_level_number == 10


class TestOverrides:
    def test_config_file_overrides_defaults(self, tmp_path):
        override = _write(tmp_path / "site.yaml", {"stock_retry_attempts": 8, "log_level": "debug"})

        settings = get_active_settings(environ={CONFIG_FILE_ENV: str(override)})

        assert settings.stock_retry_attempts == 8
        assert settings.log_level == "DEBUG"
        assert settings.prune_orphan_reports is True

    def test_database_url_env_wins(self, tmp_path):
        override = _write(tmp_path / "site.yaml", {"database_url": "sqlite:///from-file.db"})

        settings = get_active_settings(
            environ={CONFIG_FILE_ENV: str(override), DATABASE_URL_ENV: "sqlite:///from-env.db"}
        )

        assert settings.database_url == "sqlite:///from-env.db"

    def test_missing_config_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_settings(environ={CONFIG_FILE_ENV: str(tmp_path / "absent.yaml")})

    def test_later_files_win(self, tmp_path):
        first = _write(tmp_path / "a.yaml", {"echo_sql": True, "stock_retry_attempts": 2})
        second = _write(tmp_path / "b.yaml", {"stock_retry_attempts": 3})

        settings = load_settings(first, second)

        assert (settings.echo_sql, settings.stock_retry_attempts) == (True, 3)

    def test_empty_file_is_no_change(self, tmp_path):
        empty = tmp_path / "empty.yaml"
        empty.write_text("")

        assert load_settings(empty) == KernelSettings()

    def test_settings_load_is_logged(self, captured_logs):
        get_active_settings(environ={})

        assert any(r["message"] == "settings_loaded" for r in captured_logs())


class TestValidation:
    def test_unknown_key(self):
        with pytest.raises(ValueError, match="retry_attempts"):
            parse_settings({"retry_attempts": 3})

    @pytest.mark.parametrize(
        "data",
        [
            {"stock_retry_attempts": 0},
            {"stock_retry_attempts": True},
            {"stock_retry_attempts": "5"},
            {"stock_retry_backoff_seconds": -0.1},
            {"log_level": "LOUD"},
            {"database_url": ""},
            {"echo_sql": "yes"},
            {"prune_orphan_reports": 1},
        ],
    )
    def test_invalid_values(self, data):
        with pytest.raises(ValueError):
            parse_settings(data)

    def test_non_mapping_file(self, tmp_path):
        listing = tmp_path / "list.yaml"
        listing.write_text("- a\n- b\n")

        with pytest.raises(ValueError):
            load_yaml_file(listing)


class TestBridges:
    def test_ledger_and_reports_follow_settings(self, store):
        settings = KernelSettings(
            stock_retry_attempts=2, stock_retry_backoff_seconds=0.5, prune_orphan_reports=False
        )

        ledger = build_stock_ledger(settings, store)
        reports = build_report_store(settings, store)

        assert (ledger.max_attempts, ledger.backoff_seconds) == (2, 0.5)
        assert reports.prune_orphans is False

    def test_build_kernel_end_to_end(self, clock):
        kernel = build_kernel(
            KernelSettings(), clock, refresh_reports_on_log=True, configure_log_output=False
        )
        school = kernel.school_service.create_school("Mzuzu Academy")
        kernel.school_service.add_policy(
            school.id,
            {"uniformId": "tie", "level": "Senior", "gender": "Girls", "quantityPerStudent": 2},
        )
        student = kernel.roster_service.add_student(school.id, "Tadala Nkhoma", "Senior", "Girls")
        kernel.batch_service.create_batch(
            "Ties", [{"uniformId": "tie", "sizes": [{"size": "One size", "quantity": 3}]}]
        )

        result = kernel.logging_service.log_uniform_received(
            student.id, {"id": "tie", "name": "Tie"}, 1, size="One size"
        )

        assert result.is_success
        report = kernel.report_store.get_student_report(school.id, student.id)
        assert report["totalDeficit"] == 1
