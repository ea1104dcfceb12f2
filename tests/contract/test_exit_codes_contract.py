from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from conftest import write_csv
from xdomain_members.cli import main as cli_main
from xdomain_members.directory.client import DirectoryError

"""Exit code contract: 0 all rows ok, 2 some rows failed (or cancelled), 1 fatal before the batch."""

CLIENT_PATH = "xdomain_members.cli.__main__.LdapDirectoryClient"


def test_exit_code_fatal_startup(temp_workdir: Path, capsys):
    code = cli_main([])
    assert code == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_all_success(temp_workdir, write_config, sample_input, credential_env, fake_client, capsys):
    with patch(CLIENT_PATH, return_value=fake_client):
        code = cli_main([])
    out = capsys.readouterr().out
    assert code == 0
    assert "SUMMARY total=2 success=2 errors=0 already_member=0 skipped=0" in out


def test_already_member_is_not_a_failure(temp_workdir, write_config, sample_input, credential_env, fake_client, capsys):
    fake_client.add_failures["asmith"] = [DirectoryError("asmith is already a member of the group")]
    with patch(CLIENT_PATH, return_value=fake_client):
        code = cli_main([])
    assert code == 0
    assert "already_member=1" in capsys.readouterr().out


def test_exit_code_partial_failure(temp_workdir, write_config, sample_input, credential_env, fake_client, capsys):
    fake_client.lookup_failures["asmith"] = DirectoryError("user contoso.com\\asmith not found")
    with patch(CLIENT_PATH, return_value=fake_client):
        code = cli_main([])
    out = capsys.readouterr().out
    assert code == 2
    assert "SUMMARY total=2 success=1 errors=1" in out
    assert "ERROR row 2 contoso.com\\asmith -> fabrikam.com\\Readers: [NotFound]" in out


def test_exit_code_no_valid_rows_is_fatal(temp_workdir, write_config, credential_env, fake_client, capsys):
    write_csv(temp_workdir / "data" / "input.csv", ["contoso.com,jdoe,fabrikam.com,"])
    with patch(CLIENT_PATH, return_value=fake_client):
        code = cli_main([])
    assert code == 1
    assert "ERROR setup: no valid rows" in capsys.readouterr().out
