"""Tests for the pvault command line."""

import logging
import re

import pytest

from privault.pvault import main

PASS = ["--passphrase", "correct-horse"]


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger("privault")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


def run(capsys, *argv):
    code = main(list(argv))
    return code, capsys.readouterr().out


def added_id(output):
    match = re.search(r"id=([0-9a-f-]{36})", output)
    assert match, output
    return match.group(1)


@pytest.fixture
def initialized(cli_env, capsys):
    code, out = run(capsys, "init", *PASS)
    assert code == 0, out
    return cli_env


def test_init_creates_home_layout(initialized):
    assert (initialized / "vault.hdr").is_file()
    assert (initialized / "SecureVault" / "CACHEDIR.TAG").is_file()


def test_init_twice_requires_force(initialized, capsys):
    code, out = run(capsys, "init", *PASS)
    assert code == 1
    assert "already exists" in out

    code, _ = run(capsys, "init", "--force", "--passphrase", "new-pass")
    assert code == 0
    code, _ = run(capsys, "ls", "--passphrase", "new-pass")
    assert code == 0


def test_add_ls_extract_rm(initialized, tmp_path, capsys):
    src = tmp_path / "report.pdf"
    src.write_bytes(b"0123456789")

    code, out = run(capsys, "add", str(src), *PASS)
    assert code == 0
    entry_id = added_id(out)

    code, out = run(capsys, "ls", *PASS)
    assert entry_id in out and "report.pdf" in out

    out_dir = tmp_path / "out"
    out_dir.mkdir()
    code, _ = run(capsys, "extract", entry_id, str(out_dir), *PASS)
    assert code == 0
    assert (out_dir / "report.pdf").read_bytes() == b"0123456789"

    code, _ = run(capsys, "rm", entry_id, *PASS)
    assert code == 0
    code, out = run(capsys, "ls", *PASS)
    assert "(empty)" in out


def test_add_with_classification(initialized, tmp_path, capsys):
    src = tmp_path / "payroll.csv"
    src.write_text("name,salary\n")

    code, _ = run(capsys, "add", str(src), "--risk-score", "72", "--category", "sensitive",
                  "--risk-level", "high", "--keywords", "salary, payroll", *PASS)
    assert code == 0

    code, out = run(capsys, "ls", *PASS)
    assert "[sensitive]" in out


def test_invalid_risk_score_is_rejected(initialized, tmp_path, capsys):
    src = tmp_path / "a.txt"
    src.write_text("a")

    code, out = run(capsys, "add", str(src), "--risk-score", "140", *PASS)

    assert code == 1
    assert "between 0 and 100" in out


def test_wrong_passphrase(initialized, capsys):
    code, out = run(capsys, "ls", "--passphrase", "wrong")

    assert code == 1
    assert "[!] Incorrect password" in out


def test_unknown_id(initialized, capsys):
    code, out = run(capsys, "rm", "00000000-0000-0000-0000-000000000000", *PASS)

    assert code == 1
    assert "No such id" in out


def test_ls_before_init_fails_cleanly(cli_env, capsys):
    code, out = run(capsys, "ls", *PASS)

    assert code == 1
    assert "[!] " in out


def test_audit_lists_events_newest_first(initialized, tmp_path, capsys):
    src = tmp_path / "a.txt"
    src.write_text("a")
    run(capsys, "add", str(src), *PASS)

    code, out = run(capsys, "audit")
    assert code == 0
    assert "FILE_ENCRYPTED" in out and "VAULT_UNLOCKED" in out

    code, out = run(capsys, "audit", "-n", "1")
    assert len(out.strip().splitlines()) == 1


def test_sync_without_server_fails_cleanly(initialized, capsys):
    code, out = run(capsys, "sync-status", "--server", "http://127.0.0.1:9",
                    "--username", "alice", "--sync-password", "pw")

    assert code == 1
    assert "[!] " in out
