import csv
import logging
from types import SimpleNamespace

import pandas as pd
import pytest

from suppression_engine import check_suppression as check
from suppression_engine import import_suppression_list as importer
from suppression_engine.common import SqlSuppressionStore, load_config
from suppression_engine.config_loader import load_suppression_config
from suppression_engine.loaders import load_contacts_csv, load_suppression_csv
from suppression_engine.logging_utils import (
    LOG_LEVEL_ENV,
    SQL_LOGGERS,
    configure_logging,
    effective_level,
    parse_level,
)


def _write_csv(path, rows):
    pd.DataFrame(rows).to_csv(path, index=False, encoding="utf-8", quoting=csv.QUOTE_ALL)
    return str(path)


@pytest.fixture
def contacts_csv(tmp_path):
    return _write_csv(
        tmp_path / "contacts.csv",
        [
            {"contact_id": "c1", "email": "john.doe@example.com", "first_name": "John", "last_name": "Doe", "company": "Acme Corp", "cav_id": "", "cav_user_id": ""},
            {"contact_id": "c2", "email": "", "first_name": "Jane", "last_name": "Smith", "company": "ACME  corp", "cav_id": "", "cav_user_id": ""},
            {"contact_id": "c3", "email": "", "first_name": "Jane", "last_name": "Doe", "company": "Acme Corp", "cav_id": "", "cav_user_id": ""},
            {"contact_id": "c4", "email": "pat@globex.com", "first_name": "Pat", "last_name": "Lee", "company": "Globex", "cav_id": "CAV-7", "cav_user_id": ""},
        ],
    )


@pytest.fixture
def suppression_csv(tmp_path):
    return _write_csv(
        tmp_path / "suppression.csv",
        [
            {"email": "JOHN.DOE@EXAMPLE.COM", "full_name": "", "company": "", "cav_id": "", "cav_user_id": "", "reason": "unsubscribed"},
            {"email": "", "full_name": "Jane Smith", "company": "Acme Corp", "cav_id": "", "cav_user_id": "", "reason": "legal"},
            {"email": "", "full_name": "", "company": "", "cav_id": "CAV-7", "cav_user_id": "", "reason": "dnc"},
            {"email": "", "full_name": "", "company": "Acme Corp", "cav_id": "", "cav_user_id": "", "reason": "company only"},
            {"email": "broken-address", "full_name": "", "company": "", "cav_id": "", "cav_user_id": "", "reason": "typo"},
        ],
    )


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "\n".join(
            [
                "outputs:",
                f'  dir: "{tmp_path / "out"}"',
                "columns:",
                "  external_id_a: cav_id",
                "  external_id_b: cav_user_id",
            ]
        ),
        encoding="utf-8",
    )
    return str(path)


def _args(**overrides):
    base = dict(
        config=None,
        contacts_csv=None,
        suppression_csv=None,
        store_backend=None,
        store_url=None,
        out_dir=None,
        log_level=None,
    )
    base.update(overrides)
    return SimpleNamespace(**base)


def test_config_defaults_and_overrides(tmp_path, config_path):
    config = load_config(_args(config=config_path, store_backend="SQL", log_level="debug"))
    assert config.outputs.dir == tmp_path / "out"
    assert config.columns.external_id_a == "cav_id"
    assert config.columns.email == "email"
    assert config.store.backend == "sql"
    assert config.store.url == "sqlite:///suppression.db"
    assert config.logging.level == "DEBUG"
    assert config.validation.flag_invalid_entry_emails is True


def test_config_rejects_unknown_backend():
    with pytest.raises(ValueError):
        load_suppression_config(_args(store_backend="redis"))


def test_parse_level():
    assert parse_level("debug") == logging.DEBUG
    assert parse_level(" 15 ") == 15
    assert parse_level("nonsense") is None
    assert parse_level("") is None


def test_log_level_precedence_skips_unrecognised_sources(monkeypatch):
    monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)
    config = load_config(_args(log_level="error"))
    assert effective_level(config) == logging.ERROR
    assert effective_level(config, "info") == logging.INFO

    monkeypatch.setenv(LOG_LEVEL_ENV, "debug")
    assert effective_level(config, "info") == logging.DEBUG
    monkeypatch.setenv(LOG_LEVEL_ENV, "loud")
    assert effective_level(config, "info") == logging.INFO

    config.logging.level = "quiet"
    assert effective_level(config) == logging.WARNING


def test_configure_logging_keeps_sql_statements_quiet(monkeypatch):
    monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)
    root_logger = logging.getLogger()
    saved = [root_logger.level] + [logging.getLogger(name).level for name in SQL_LOGGERS]
    try:
        config = load_config(_args(log_level="info"))
        assert configure_logging(config) == logging.INFO
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        assert configure_logging(config, level_override="debug") == logging.DEBUG
        assert logging.getLogger("sqlalchemy.engine").level == logging.DEBUG
    finally:
        root_logger.setLevel(saved[0])
        for name, level in zip(SQL_LOGGERS, saved[1:]):
            logging.getLogger(name).setLevel(level)


def test_load_suppression_csv_rejects_and_flags(suppression_csv, config_path):
    config = load_config(_args(config=config_path))
    imported = load_suppression_csv(suppression_csv, config.columns)
    assert len(imported.entries) == 4
    assert [row["reason"] for row in imported.rejected] == ["company only"]
    assert imported.flagged_emails == ["broken-address"]
    assert imported.entries[0].source == "csv_import"


def test_load_contacts_assigns_missing_ids(tmp_path):
    path = _write_csv(tmp_path / "noid.csv", [{"email": "A@B.com"}, {"email": "c@d.com"}])
    first = load_contacts_csv(path)
    second = load_contacts_csv(path)
    assert [record.contact_id for record in first] == [record.contact_id for record in second]
    assert first[0].contact_id != first[1].contact_id
    assert first[0].email_norm == "a@b.com"


def test_check_suppression_writes_results(tmp_path, contacts_csv, suppression_csv, config_path, capsys):
    args = _args(config=config_path, contacts_csv=contacts_csv, suppression_csv=suppression_csv)
    assert check.build(args) == 0

    out_dir = tmp_path / "out"
    results = pd.read_csv(out_dir / "suppression_results.csv", dtype=str, keep_default_na=False)
    by_id = dict(zip(results["contact_id"], results["reason"]))
    assert by_id == {"c1": "email", "c2": "compound_key", "c3": "", "c4": "external_id_a"}
    assert list(results["suppressed"]) == ["true", "true", "false", "true"]
    assert list(results.columns) == [
        "contact_id",
        "email",
        "first_name",
        "last_name",
        "company",
        "external_id_a",
        "external_id_b",
        "suppressed",
        "reason",
    ]
    assert list(results["external_id_a"]) == ["", "", "", "CAV-7"]
    assert results.loc[0, "email"] == "john.doe@example.com"

    summary = pd.read_csv(out_dir / "suppression_summary.csv", dtype=str, keep_default_na=False)
    assert dict(zip(summary["reason"], summary["count"])) == {
        "email": "1",
        "external_id_a": "1",
        "external_id_b": "0",
        "compound_key": "1",
    }
    printed = capsys.readouterr().out
    assert "Contacts suppressed: 3" in printed
    assert "Suppression rate: 75.0%" in printed


def test_check_suppression_requires_contacts(tmp_path):
    args = _args(contacts_csv=str(tmp_path / "missing.csv"), out_dir=str(tmp_path))
    assert check.build(args) == 1


def test_import_then_check_against_sql_store(tmp_path, contacts_csv, suppression_csv, config_path):
    url = f"sqlite:///{tmp_path / 'suppression.db'}"
    import_args = _args(config=config_path, suppression_csv=suppression_csv, store_url=url)
    assert importer.build(import_args) == 0
    assert (tmp_path / "out" / "suppression_import_rejects.csv").exists()

    _, total = SqlSuppressionStore.from_url(url).list_entries()
    assert total == 4

    check_args = _args(
        config=config_path, contacts_csv=contacts_csv, store_backend="sql", store_url=url
    )
    assert check.build(check_args) == 0
    results = pd.read_csv(
        tmp_path / "out" / "suppression_results.csv", dtype=str, keep_default_na=False
    )
    assert list(results["reason"]) == ["email", "compound_key", "", "external_id_a"]


def test_repeated_runs_do_not_duplicate_sql_entries(
    tmp_path, contacts_csv, suppression_csv, config_path, capsys
):
    url = f"sqlite:///{tmp_path / 'suppression.db'}"
    import_args = _args(config=config_path, suppression_csv=suppression_csv, store_url=url)
    assert importer.build(import_args) == 0
    assert importer.build(import_args) == 0
    assert "Added 0 entries to suppression list (4 total)" in capsys.readouterr().out

    check_args = _args(
        config=config_path,
        contacts_csv=contacts_csv,
        suppression_csv=suppression_csv,
        store_backend="sql",
        store_url=url,
    )
    assert check.build(check_args) == 0
    assert check.build(check_args) == 0
    _, total = SqlSuppressionStore.from_url(url).list_entries()
    assert total == 4
