"""
Tests for the listener command line and startup configuration checks.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from solana_ingestion.config import require_credentials
from solana_ingestion.exceptions import ConfigurationError
from solana_ingestion.run_listener import main, parse_args


def test_parse_args_slots():
    args = parse_args(["--project", "proj", "--dataset", "ds", "--start-slot", "100", "-e", "105"])

    assert args.project == "proj"
    assert args.dataset == "ds"
    assert args.start_slot == 100
    assert args.end_slot == 105


@pytest.mark.parametrize("value", ["-1", "abc", "1.5"])
def test_invalid_slot_is_rejected(value):
    with pytest.raises(SystemExit):
        parse_args(["--project", "proj", "--start-slot", value])


def test_end_before_start_is_rejected():
    with pytest.raises(SystemExit):
        parse_args(["--project", "proj", "--start-slot", "10", "--end-slot", "5"])


def test_missing_credentials(monkeypatch):
    monkeypatch.delenv("GOOGLE_APPLICATION_CREDENTIALS", raising=False)
    with pytest.raises(ConfigurationError):
        require_credentials()


def test_credentials_file_must_exist(monkeypatch, tmp_path):
    monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", str(tmp_path / "missing.json"))
    with pytest.raises(ConfigurationError):
        require_credentials()


def test_credentials_file_found(monkeypatch, tmp_path):
    key = tmp_path / "key.json"
    key.write_text("{}", encoding="utf-8")
    monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", str(key))
    assert require_credentials() == str(key)


def test_main_fails_fast_without_credentials(monkeypatch):
    monkeypatch.delenv("GOOGLE_APPLICATION_CREDENTIALS", raising=False)
    with patch("solana_ingestion.run_listener.Listener") as listener_cls:
        with pytest.raises(SystemExit) as excinfo:
            main(["--project", "proj", "--log-level", "INFO"])
    assert excinfo.value.code == 2
    listener_cls.assert_not_called()


def test_main_runs_listener(monkeypatch, tmp_path):
    key = tmp_path / "key.json"
    key.write_text("{}", encoding="utf-8")
    monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", str(key))
    with patch("solana_ingestion.run_listener.Listener") as listener_cls:
        listener_cls.return_value.listen.return_value = {"dispatched": 5, "committed": 5, "dropped": 0, "failed": 0}
        main(["--project", "proj", "--dataset", "ds", "-s", "100", "-e", "105", "--log-level", "INFO"])

    listener_cls.assert_called_once_with(project_id="proj", dataset_id="ds", start_slot=100, end_slot=105)
