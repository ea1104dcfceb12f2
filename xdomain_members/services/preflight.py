from __future__ import annotations

import logging
import socket
from collections.abc import Callable, Iterable

from ..directory.client import DirectoryClient, split_account_name
from ..models.config_models import Credential
from ..models.preflight import (
    ConnectivityReport,
    CredentialValidationResult,
    DomainConnectivityResult,
)

"""Pre-flight checks run once per distinct domain before a batch starts.

Both checks are advisory: they report, they never raise. The processor decides
whether to continue (see BatchProcessor._run_preflight).
"""

__all__ = [
    "ConnectivityProbe",
    "CredentialValidator",
    "normalize_username",
]

logger = logging.getLogger(__name__)


class ConnectivityProbe:
    """Network reachability + domain controller discovery per domain."""

    def __init__(
        self,
        client: DirectoryClient,
        port: int = 389,
        host_for: Callable[[str], str] | None = None,
    ) -> None:
        self.client = client
        self.port = port
        # domain -> host actually dialled (DirectoryConfig.server_for)
        self.host_for = host_for or (lambda domain: domain)

    def _reachable(self, domain: str, timeout_seconds: float) -> tuple[bool, str]:
        host = self.host_for(domain)
        try:
            with socket.create_connection((host, self.port), timeout=timeout_seconds):
                return True, ""
        except OSError as e:
            where = host if host == domain else f"{domain} ({host})"
            return False, f"{where}:{self.port} unreachable: {e}"

    def probe_domain(self, domain: str, timeout_seconds: float) -> DomainConnectivityResult:
        reachable, error = self._reachable(domain, timeout_seconds)
        if not reachable:
            logger.warning("connectivity: %s", error)
            return DomainConnectivityResult(
                domain=domain, reachable=False, directory_controller_found=False, error=error
            )
        try:
            controller = self.client.probe_domain_controller(domain)
        except Exception as e:
            logger.warning("connectivity: %s reachable but no controller found: %s", domain, e)
            return DomainConnectivityResult(
                domain=domain, reachable=True, directory_controller_found=False, error=str(e)
            )
        logger.info("connectivity: %s ok (controller=%s)", domain, controller.name)
        return DomainConnectivityResult(
            domain=domain,
            reachable=True,
            directory_controller_found=True,
            controller_name=controller.name,
        )

    def probe(self, domains: Iterable[str], timeout_seconds: float = 5) -> ConnectivityReport:
        results = {d: self.probe_domain(d, timeout_seconds) for d in sorted(set(domains))}
        return ConnectivityReport(results=results)


def normalize_username(username: str) -> str:
    """Strip ``DOMAIN\\`` prefix or ``@domain`` suffix."""
    user, _ = split_account_name(username.strip())
    return user


class CredentialValidator:
    """Validate a credential against a domain's account store.

    Never raises and never logs the password.
    """

    def __init__(self, client: DirectoryClient) -> None:
        self.client = client

    def validate(self, credential: Credential, domain: str) -> CredentialValidationResult:
        account = normalize_username(credential.username)
        if not account:
            return CredentialValidationResult(
                domain=domain, is_valid=False, username="", error="empty username"
            )
        # Validate the bare account name within the domain's own context
        normalized = Credential(username=account, password=credential.password)
        try:
            ok = self.client.validate_credential(normalized, domain)
        except Exception as e:
            logger.warning("credentials: validation against %s failed: %s", domain, e)
            return CredentialValidationResult(
                domain=domain, is_valid=False, username=account, error=str(e)
            )
        if not ok:
            logger.warning("credentials: %s rejected by %s", account, domain)
            return CredentialValidationResult(
                domain=domain,
                is_valid=False,
                username=account,
                error=f"credential for {account} rejected by {domain}",
            )
        logger.info("credentials: %s valid for %s", account, domain)
        return CredentialValidationResult(domain=domain, is_valid=True, username=account)

    def validate_all(
        self, credential: Credential, domains: Iterable[str]
    ) -> dict[str, CredentialValidationResult]:
        return {d: self.validate(credential, d) for d in sorted(set(domains))}
