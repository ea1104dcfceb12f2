# Shared pytest fixtures
from __future__ import annotations
import os
import tempfile
from pathlib import Path
from typing import Any

import pytest

from xdomain_members.directory.client import (
    DirectoryError,
    DirectoryUser,
    DomainController,
    domain_to_base_dn,
)
from xdomain_members.logging.init import reset_logging
from xdomain_members.models.config_models import BatchConfig, Credential
from xdomain_members.models.row_data import RowData
from xdomain_members.services.retry import RetryExecutor

CSV_HEADER = "SourceDomain,SourceUser,TargetDomain,TargetGroup\n"


class FakeDirectoryClient:
    """In-memory DirectoryClient.

    - every user resolves unless listed in ``lookup_failures``
    - ``add_failures[sam]`` is a list of exceptions raised by successive
      add_group_member calls for that member (an exhausted list means success)
    - every call is recorded in ``calls``
    """

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.lookup_failures: dict[str, Exception] = {}
        self.add_failures: dict[str, list[Exception]] = {}
        self.members: dict[tuple[str, str], set[str]] = {}
        self.hide_members = False
        self.no_controller: set[str] = set()
        self.rejecting_domains: set[str] = set()

    def lookup_user(self, username: str, domain: str, credential: Credential) -> DirectoryUser:
        self.calls.append(("lookup", username, domain))
        if username in self.lookup_failures:
            raise self.lookup_failures[username]
        return DirectoryUser(
            distinguished_name=f"CN={username},CN=Users,{domain_to_base_dn(domain)}",
            sam_account_name=username,
            sid="",
            domain=domain,
        )

    def add_group_member(self, group_identity, member, target_domain, credential, dry_run=False):
        self.calls.append(("add", group_identity, member.sam_account_name, target_domain, dry_run))
        pending = self.add_failures.get(member.sam_account_name)
        if pending:
            raise pending.pop(0)
        if not dry_run:
            self.members.setdefault((target_domain, group_identity), set()).add(
                member.sam_account_name.lower()
            )

    def list_group_members(self, group_identity, domain, credential):
        self.calls.append(("list", group_identity, domain))
        if self.hide_members:
            return set()
        return set(self.members.get((domain, group_identity), set()))

    def probe_domain_controller(self, domain: str) -> DomainController:
        self.calls.append(("probe", domain))
        if domain in self.no_controller:
            raise DirectoryError(f"no domain controller advertised for {domain}")
        return DomainController(name=f"dc01.{domain}")

    def validate_credential(self, credential: Credential, domain: str) -> bool:
        self.calls.append(("validate", credential.username, domain))
        return domain not in self.rejecting_domains

    @property
    def add_calls(self) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == "add"]


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def fake_client() -> FakeDirectoryClient:
    return FakeDirectoryClient()


@pytest.fixture()
def sleep_recorder() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def retry_executor(sleep_recorder: RecordingSleep) -> RetryExecutor:
    return RetryExecutor(sleep=sleep_recorder)


@pytest.fixture()
def make_config(tmp_path: Path):
    def _make(**kwargs: Any) -> BatchConfig:
        values: dict[str, Any] = {
            "input_path": tmp_path / "input.csv",
            "output_dir": tmp_path / "logs",
            "credential": Credential(username="CONTOSO\\svc-xdm", password="s3cret!"),
        }
        values.update(kwargs)
        return BatchConfig(**values)
    return _make


def make_rows(*tuples: tuple[str, str, str, str]) -> list[RowData]:
    rows = []
    for idx, (sd, su, td, tg) in enumerate(tuples, start=1):
        rows.append(
            RowData(
                row_number=idx,
                values={"SourceDomain": sd, "SourceUser": su, "TargetDomain": td, "TargetGroup": tg},
            )
        )
    return rows


def write_csv(path: Path, lines: list[str]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(CSV_HEADER + "".join(line + "\n" for line in lines), encoding="utf-8")
    return path


@pytest.fixture()
def sample_config_yaml() -> str:
    return """input_path: ./data/input.csv
output_dir: ./logs
test_mode: false
max_retries: 3
retry_delay_seconds: 5
exponential_backoff: false
validate_credentials_first: false
test_connectivity_first: false
directory:
  port: 389
  use_ssl: false
  domain_controllers:
    contoso.com: dc01.contoso.com
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "batch.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def credential_env(monkeypatch):
    monkeypatch.setenv("XDM_USERNAME", "CONTOSO\\svc-xdm")
    monkeypatch.setenv("XDM_PASSWORD", "s3cret!")
    return {"XDM_USERNAME": "CONTOSO\\svc-xdm", "XDM_PASSWORD": "s3cret!"}


@pytest.fixture()
def sample_input(temp_workdir: Path) -> Path:
    return write_csv(
        temp_workdir / "data" / "input.csv",
        [
            "contoso.com,jdoe,fabrikam.com,Readers",
            "contoso.com,asmith,fabrikam.com,Readers",
        ],
    )
