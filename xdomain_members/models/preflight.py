from __future__ import annotations

from dataclasses import dataclass, field

"""Pre-flight check result models (connectivity probe, credential validation)."""

__all__ = [
    "ConnectivityReport",
    "CredentialValidationResult",
    "DomainConnectivityResult",
]


@dataclass(frozen=True)
class DomainConnectivityResult:
    domain: str
    reachable: bool
    directory_controller_found: bool
    controller_name: str = ""
    error: str = ""


@dataclass(frozen=True)
class CredentialValidationResult:
    domain: str
    is_valid: bool
    username: str  # normalized account name, never the password
    error: str = ""


@dataclass(frozen=True)
class ConnectivityReport:
    """Per-domain probe results plus the aggregate view used by the processor."""
    results: dict[str, DomainConnectivityResult] = field(default_factory=dict)

    @property
    def unreachable_domains(self) -> list[str]:
        return sorted(d for d, r in self.results.items() if not r.reachable)

    @property
    def domains_without_controller(self) -> list[str]:
        # Only reachable domains can be said to lack a discoverable controller
        return sorted(
            d for d, r in self.results.items() if r.reachable and not r.directory_controller_found
        )

    @property
    def all_reachable(self) -> bool:
        return not self.unreachable_domains

    @property
    def all_controllers_accessible(self) -> bool:
        return all(r.directory_controller_found for r in self.results.values())

    def __getitem__(self, domain: str) -> DomainConnectivityResult:
        return self.results[domain]

    def __len__(self) -> int:
        return len(self.results)
