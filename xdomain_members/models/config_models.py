from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

"""Config dataclasses for the bulk cross-domain membership tool.

These are the typed objects handed to BatchProcessor and the directory client.
The YAML loader (config/loader.py) builds them; nothing here reads files or
environment variables. Range limits live here so the loader and the CLI
override path validate against the same numbers.
"""

__all__ = [
    "DEFAULT_RETRYABLE_PATTERNS",
    "BatchConfig",
    "Credential",
    "DirectoryConfig",
    "MAX_RETRIES_RANGE",
    "RETRY_DELAY_RANGE",
]

MAX_RETRIES_RANGE = (1, 10)
RETRY_DELAY_RANGE = (1, 60)

# Transient directory failures worth another attempt. Anything else (access
# denied, already a member, no such user) fails the row immediately.
DEFAULT_RETRYABLE_PATTERNS: tuple[str, ...] = (
    "server is not operational",
    "RPC server",
    "timed? ?out",
    "busy",
    "unavailable",
    "not yet visible",
)


@dataclass(frozen=True)
class Credential:
    """Cross-domain admin credential. Read-only for the whole run.

    The password is excluded from repr() so the object can be logged safely.
    """
    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class DirectoryConfig:
    """LDAP connection settings shared by every domain."""
    port: int = 389
    use_ssl: bool = False
    connect_timeout: int = 10
    # domain -> controller host; unmapped domains use their DNS name
    domain_controllers: dict[str, str] = field(default_factory=dict)

    def server_for(self, domain: str) -> str:
        return self.domain_controllers.get(domain.lower(), domain)


@dataclass(frozen=True)
class BatchConfig:
    """Root configuration object consumed by BatchProcessor."""
    input_path: Path
    output_dir: Path
    credential: Credential
    test_mode: bool = False
    max_retries: int = 3  # [1, 10]
    retry_delay_seconds: int = 5  # [1, 60]
    exponential_backoff: bool = False
    validate_credentials_first: bool = False
    test_connectivity_first: bool = False
    connectivity_timeout_seconds: int = 5
    retryable_error_patterns: tuple[str, ...] = DEFAULT_RETRYABLE_PATTERNS
    verify_membership: bool = False  # re-read group members after a live add
    assume_yes: bool = False  # continue past pre-flight warnings without asking
    directory: DirectoryConfig = field(default_factory=DirectoryConfig)
