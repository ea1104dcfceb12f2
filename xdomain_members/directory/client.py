from __future__ import annotations

import logging
import ssl
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Protocol

from ldap3 import ALL, BASE, DSA, MODIFY_ADD, NTLM, SIMPLE, SUBTREE, Connection, Server, Tls
from ldap3.core.exceptions import LDAPBindError, LDAPException, LDAPSocketOpenError
from ldap3.protocol.formatters.formatters import format_sid
from ldap3.utils.conv import escape_filter_chars
from ldap3.utils.dn import parse_dn

from ..models.config_models import Credential, DirectoryConfig

"""Directory service client (Active Directory over LDAP).

DirectoryClient is the interface the batch engine consumes; LdapDirectoryClient
implements it with ldap3. Every operation opens its own connection under the
caller-supplied credential against the controller for the named domain and
unbinds it before returning, on success and failure alike.

All failures surface as DirectoryError. Its message is what ErrorClassifier
pattern-matches on, so LDAP result codes are mapped to the wording the
classifier expects (e.g. result 68 -> "already a member of the group").
"""

__all__ = [
    "DirectoryClient",
    "DirectoryError",
    "DirectoryUser",
    "DomainController",
    "LdapDirectoryClient",
    "domain_to_base_dn",
    "split_account_name",
]

logger = logging.getLogger(__name__)

# LDAP result codes (RFC 4511) we translate into classifier wording
RESULT_NO_SUCH_OBJECT = 32
RESULT_INVALID_CREDENTIALS = 49
RESULT_INSUFFICIENT_ACCESS = 50
RESULT_BUSY = 51
RESULT_UNAVAILABLE = 52
RESULT_UNWILLING = 53
RESULT_ENTRY_ALREADY_EXISTS = 68

_RESULT_MESSAGES = {
    RESULT_NO_SUCH_OBJECT: "object not found",
    RESULT_INVALID_CREDENTIALS: "access denied: invalid credentials",
    RESULT_INSUFFICIENT_ACCESS: "access denied: insufficient access rights",
    RESULT_BUSY: "directory server busy",
    RESULT_UNAVAILABLE: "directory server unavailable",
    RESULT_UNWILLING: "access denied: server unwilling to perform",
    RESULT_ENTRY_ALREADY_EXISTS: "the specified account is already a member of the group",
}


class DirectoryError(Exception):
    """Raised for any failed directory lookup / mutation."""

    def __init__(self, message: str, result_code: int | None = None) -> None:
        super().__init__(message)
        self.result_code = result_code


@dataclass(frozen=True)
class DirectoryUser:
    """Resolved principal."""
    distinguished_name: str
    sam_account_name: str
    sid: str = ""
    domain: str = ""


@dataclass(frozen=True)
class DomainController:
    name: str


class DirectoryClient(Protocol):
    """Interface consumed by the batch engine and the pre-flight checks."""

    def lookup_user(self, username: str, domain: str, credential: Credential) -> DirectoryUser: ...

    def add_group_member(
        self,
        group_identity: str,
        member: DirectoryUser,
        target_domain: str,
        credential: Credential,
        dry_run: bool = False,
    ) -> None: ...

    def list_group_members(
        self, group_identity: str, domain: str, credential: Credential
    ) -> set[str]: ...

    def probe_domain_controller(self, domain: str) -> DomainController: ...

    def validate_credential(self, credential: Credential, domain: str) -> bool: ...


def domain_to_base_dn(domain: str) -> str:
    """``contoso.com`` -> ``DC=contoso,DC=com``."""
    labels = [label.strip() for label in domain.split(".") if label.strip()]
    if not labels:
        raise DirectoryError(f"invalid domain name: {domain!r}")
    return ",".join(f"DC={label}" for label in labels)


def _foreign_sid(dn: str) -> str | None:
    """SID (lower-cased) named by a ForeignSecurityPrincipals member DN, else None."""
    if "cn=foreignsecurityprincipals," not in dn.lower():
        return None
    attr, value, _ = parse_dn(dn)[0]
    return value.lower() if attr.lower() == "cn" else None


def split_account_name(username: str) -> tuple[str, str]:
    """Split ``DOMAIN\\user`` or ``user@domain`` into (user, domain).

    Plain names return an empty domain.
    """
    if "\\" in username:
        domain, user = username.split("\\", 1)
        return user, domain
    if "@" in username:
        user, domain = username.rsplit("@", 1)
        return user, domain
    return username, ""


class LdapDirectoryClient:
    """ldap3-backed DirectoryClient for Active Directory domains."""

    def __init__(self, settings: DirectoryConfig | None = None) -> None:
        self.settings = settings or DirectoryConfig()

    # -- connection helpers -------------------------------------------------

    def _server(self, domain: str, get_info: str = ALL) -> Server:
        tls_config = None
        if self.settings.use_ssl:
            tls_config = Tls(validate=ssl.CERT_REQUIRED)
        return Server(
            self.settings.server_for(domain),
            port=self.settings.port,
            use_ssl=self.settings.use_ssl,
            tls=tls_config,
            get_info=get_info,
            connect_timeout=self.settings.connect_timeout,
        )

    @staticmethod
    def _bind_user(credential: Credential, domain: str) -> tuple[str, str]:
        """Pick bind user + authentication method for the credential.

        ``DOMAIN\\user`` binds with NTLM, everything else with a SIMPLE bind
        using the UPN form.
        """
        if "\\" in credential.username:
            return credential.username, NTLM
        if "@" in credential.username:
            return credential.username, SIMPLE
        return f"{credential.username}@{domain}", SIMPLE

    @contextmanager
    def _connection(self, domain: str, credential: Credential) -> Iterator[Connection]:
        user, method = self._bind_user(credential, domain)
        conn: Connection | None = None
        try:
            conn = Connection(
                self._server(domain),
                user=user,
                password=credential.password,
                authentication=method,
                auto_bind=True,
                raise_exceptions=False,
                receive_timeout=self.settings.connect_timeout,
            )
            yield conn
        except LDAPSocketOpenError as e:
            raise DirectoryError(
                f"The server is not operational ({self.settings.server_for(domain)}): {e}"
            ) from e
        except LDAPBindError as e:
            raise DirectoryError(
                f"access denied binding to {domain} as {user}: {e}", RESULT_INVALID_CREDENTIALS
            ) from e
        except LDAPException as e:
            raise DirectoryError(f"LDAP error on {domain}: {e}") from e
        finally:
            if conn is not None and conn.bound:
                conn.unbind()

    @staticmethod
    def _raise_for_result(conn: Connection, action: str) -> None:
        result = conn.result or {}
        code = result.get("result")
        if code in (0, None):
            return
        text = _RESULT_MESSAGES.get(code, result.get("description") or "unknown error")
        detail = result.get("message") or ""
        raise DirectoryError(f"{action}: {text} ({result.get('description')}) {detail}".strip(), code)

    def _find_group(self, conn: Connection, group_identity: str, domain: str) -> tuple[str, list[str]]:
        """Resolve a group by sAMAccountName / cn (or DN) -> (dn, member DNs)."""
        if "=" in group_identity:
            ok = conn.search(
                search_base=group_identity,
                search_filter="(objectClass=group)",
                search_scope=BASE,
                attributes=["member"],
            )
        else:
            name = escape_filter_chars(group_identity)
            ok = conn.search(
                search_base=domain_to_base_dn(domain),
                search_filter=f"(&(objectClass=group)(|(sAMAccountName={name})(cn={name})))",
                search_scope=SUBTREE,
                attributes=["member"],
            )
        if not ok or not conn.entries:
            code = (conn.result or {}).get("result")
            if code not in (0, None, RESULT_NO_SUCH_OBJECT):
                self._raise_for_result(conn, f"group lookup {domain}\\{group_identity}")
            raise DirectoryError(
                f"group {domain}\\{group_identity} not found", RESULT_NO_SUCH_OBJECT
            )
        if len(conn.entries) > 1:
            logger.warning("multiple groups match %s\\%s, using first", domain, group_identity)
        entry = conn.entries[0]
        members = [str(m) for m in entry.member.values] if "member" in entry else []
        return entry.entry_dn, members

    @staticmethod
    def _member_reference(member: DirectoryUser, target_domain: str) -> str:
        # Users from another domain are referenced by SID so the target
        # controller creates the foreign security principal itself
        if member.sid and member.domain and member.domain.lower() != target_domain.lower():
            return f"<SID={member.sid}>"
        return member.distinguished_name

    # -- DirectoryClient ----------------------------------------------------

    def lookup_user(self, username: str, domain: str, credential: Credential) -> DirectoryUser:
        account, _ = split_account_name(username)
        with self._connection(domain, credential) as conn:
            conn.search(
                search_base=domain_to_base_dn(domain),
                search_filter=(
                    f"(&(objectCategory=person)(objectClass=user)"
                    f"(sAMAccountName={escape_filter_chars(account)}))"
                ),
                search_scope=SUBTREE,
                attributes=["sAMAccountName", "objectSid"],
            )
            code = (conn.result or {}).get("result")
            if code not in (0, None, RESULT_NO_SUCH_OBJECT):
                self._raise_for_result(conn, f"user lookup {domain}\\{account}")
            if not conn.entries:
                raise DirectoryError(
                    f"user {domain}\\{account} not found", RESULT_NO_SUCH_OBJECT
                )
            entry = conn.entries[0]
            raw_sid = entry.objectSid.raw_values[0] if "objectSid" in entry and entry.objectSid.raw_values else b""
            user = DirectoryUser(
                distinguished_name=entry.entry_dn,
                sam_account_name=str(entry.sAMAccountName) if "sAMAccountName" in entry else account,
                sid=format_sid(raw_sid) if raw_sid else "",
                domain=domain,
            )
        logger.debug("resolved %s\\%s -> %s", domain, account, user.distinguished_name)
        return user

    def add_group_member(
        self,
        group_identity: str,
        member: DirectoryUser,
        target_domain: str,
        credential: Credential,
        dry_run: bool = False,
    ) -> None:
        reference = self._member_reference(member, target_domain)
        with self._connection(target_domain, credential) as conn:
            group_dn, current = self._find_group(conn, group_identity, target_domain)
            lowered = {m.lower() for m in current}
            foreign = {sid for sid in map(_foreign_sid, current) if sid}
            if member.distinguished_name.lower() in lowered or (
                member.sid and member.sid.lower() in foreign
            ):
                raise DirectoryError(
                    f"{member.sam_account_name} is already a member of the group {group_dn}",
                    RESULT_ENTRY_ALREADY_EXISTS,
                )
            if dry_run:
                self._check_write_access(conn, group_dn)
                logger.debug("dry-run add %s -> %s ok", reference, group_dn)
                return
            conn.modify(group_dn, {"member": [(MODIFY_ADD, [reference])]})
            self._raise_for_result(conn, f"add {member.sam_account_name} to {group_dn}")
        logger.debug("added %s -> %s", reference, group_dn)

    def _check_write_access(self, conn: Connection, group_dn: str) -> None:
        # AD computes allowedAttributesEffective for the bound principal
        conn.search(
            search_base=group_dn,
            search_filter="(objectClass=*)",
            search_scope=BASE,
            attributes=["allowedAttributesEffective"],
        )
        self._raise_for_result(conn, f"permission check on {group_dn}")
        allowed: list[str] = []
        if conn.entries and "allowedAttributesEffective" in conn.entries[0]:
            allowed = [str(a).lower() for a in conn.entries[0].allowedAttributesEffective.values]
        if "member" not in allowed:
            raise DirectoryError(
                f"access denied: no write permission on member attribute of {group_dn}",
                RESULT_INSUFFICIENT_ACCESS,
            )

    def list_group_members(
        self, group_identity: str, domain: str, credential: Credential
    ) -> set[str]:
        """Return the sAMAccountNames (lower-cased) of the group's direct members.

        Foreign security principals are returned as their SID string.
        """
        with self._connection(domain, credential) as conn:
            _, members = self._find_group(conn, group_identity, domain)
            names: set[str] = set()
            for dn in members:
                sid = _foreign_sid(dn)
                if sid is not None:
                    names.add(sid)
                    continue
                conn.search(
                    search_base=dn,
                    search_filter="(objectClass=*)",
                    search_scope=BASE,
                    attributes=["sAMAccountName"],
                )
                if conn.entries and "sAMAccountName" in conn.entries[0]:
                    names.add(str(conn.entries[0].sAMAccountName).lower())
            return names

    def probe_domain_controller(self, domain: str) -> DomainController:
        """Read dnsHostName from the rootDSE with an anonymous bind."""
        server = self._server(domain, get_info=DSA)
        conn: Connection | None = None
        try:
            conn = Connection(server, auto_bind=True, raise_exceptions=True)
            info = server.info
            hosts = info.other.get("dnsHostName") if info is not None else None
            if not hosts:
                raise DirectoryError(f"no domain controller advertised for {domain}")
            return DomainController(name=str(hosts[0]))
        except LDAPException as e:
            raise DirectoryError(f"The server is not operational ({domain}): {e}") from e
        finally:
            if conn is not None and conn.bound:
                conn.unbind()

    def validate_credential(self, credential: Credential, domain: str) -> bool:
        """Attempt a bind; True on success. Connection always released."""
        user, method = self._bind_user(credential, domain)
        conn = Connection(
            self._server(domain, get_info=DSA),
            user=user,
            password=credential.password,
            authentication=method,
            raise_exceptions=False,
        )
        try:
            return bool(conn.bind())
        except LDAPException as e:
            raise DirectoryError(f"credential validation against {domain} failed: {e}") from e
        finally:
            if conn.bound:
                conn.unbind()
