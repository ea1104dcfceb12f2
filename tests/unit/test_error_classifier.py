from __future__ import annotations

import pytest

from xdomain_members.services.error_classifier import ErrorCategory, classify_error


@pytest.mark.parametrize(
    "message,expected",
    [
        ("The server is not operational.", ErrorCategory.CONNECTIVITY),
        ("The RPC server is unavailable", ErrorCategory.CONNECTIVITY),
        ("Access Denied", ErrorCategory.AUTHENTICATION),
        ("401 UNAUTHORIZED", ErrorCategory.AUTHENTICATION),
        ("add jdoe: access denied: insufficient access rights (insufficientAccessRights)", ErrorCategory.AUTHENTICATION),
        ("operation timeout", ErrorCategory.TIMEOUT),
        ("The operation timed out", ErrorCategory.TIMEOUT),
        ("user contoso.com\\ghost not found", ErrorCategory.NOT_FOUND),
        ("Group does not exist", ErrorCategory.NOT_FOUND),
        ("jdoe is already a member of the group", ErrorCategory.ALREADY_EXISTS),
        ("The object already exists", ErrorCategory.ALREADY_EXISTS),
        ("constraint violation", ErrorCategory.OTHER),
        ("", ErrorCategory.OTHER),
    ],
)
def test_classify_error(message, expected):
    assert classify_error(message) is expected


def test_first_match_wins():
    # connectivity pattern precedes timeout
    assert classify_error("RPC server timed out") is ErrorCategory.CONNECTIVITY
    # authentication precedes not-found
    assert classify_error("access denied: object not found") is ErrorCategory.AUTHENTICATION
    # not-found precedes already-exists
    assert classify_error("group not found, member already exists") is ErrorCategory.NOT_FOUND


def test_account_names_do_not_trigger_connectivity():
    assert classify_error("user contoso.com\\websocket-svc not found") is ErrorCategory.NOT_FOUND
    assert classify_error("group fabrikam.com\\Socket-Admins not found") is ErrorCategory.NOT_FOUND


def test_category_values():
    assert {c.value for c in ErrorCategory} == {
        "Connectivity",
        "Authentication",
        "Timeout",
        "NotFound",
        "AlreadyExists",
        "Other",
    }
