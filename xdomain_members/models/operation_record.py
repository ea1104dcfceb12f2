from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from .membership_request import MembershipRequest

"""OperationRecord model and OperationStatus enum.

One OperationRecord is created per valid MembershipRequest, appended to the
processor's ordered log and written to the audit CSV at the end of the run.
A single synthetic record with operation_id == SUMMARY_OPERATION_ID closes
every log.

The audit CSV column order is fixed by AUDIT_COLUMNS.
"""

__all__ = [
    "AUDIT_COLUMNS",
    "SUMMARY_OPERATION_ID",
    "TIMESTAMP_FMT",
    "OperationRecord",
    "OperationStatus",
]

SUMMARY_OPERATION_ID = "SUMMARY"
TIMESTAMP_FMT = "%Y-%m-%d %H:%M:%S"

AUDIT_COLUMNS: tuple[str, ...] = (
    "OperationId",
    "Timestamp",
    "SourceUser",
    "SourceDomain",
    "SourceUserDN",
    "TargetGroup",
    "TargetDomain",
    "Status",
    "Message",
    "DurationSeconds",
    "ProcessedBy",
    "ComputerName",
    "TestMode",
)


class OperationStatus(Enum):
    """Outcome of one membership request.

    Row lifecycle: pending -> resolving user -> adding member -> terminal status.

    - SUCCESS: member added (live mode)
    - ALREADY_MEMBER: user was already in the group; not an error
    - ERROR: lookup or add failed after retries
    - TEST_SUCCESS: dry-run lookup + add succeeded (test mode)
    - SKIPPED: row dropped at validation (counted, never logged as a record)
    """
    SUCCESS = "Success"
    ALREADY_MEMBER = "AlreadyMember"
    ERROR = "Error"
    TEST_SUCCESS = "TestSuccess"
    SKIPPED = "Skipped"


@dataclass(frozen=True)
class OperationRecord:
    operation_id: str
    timestamp: datetime
    source_domain: str
    source_user: str
    target_domain: str
    target_group: str
    source_user_dn: str
    status: OperationStatus | None  # None only on the SUMMARY record
    message: str
    duration_seconds: float
    processed_by: str
    computer_name: str
    test_mode: bool

    @staticmethod
    def new_operation_id() -> str:
        return uuid.uuid4().hex

    @classmethod
    def for_request(
        cls,
        request: MembershipRequest,
        *,
        operation_id: str,
        status: OperationStatus,
        message: str,
        duration_seconds: float,
        processed_by: str,
        computer_name: str,
        test_mode: bool,
        source_user_dn: str = "",
        timestamp: datetime | None = None,
    ) -> OperationRecord:
        """Create the record for a processed request."""
        return cls(
            operation_id=operation_id,
            timestamp=timestamp or datetime.now(),
            source_domain=request.source_domain,
            source_user=request.source_user,
            target_domain=request.target_domain,
            target_group=request.target_group,
            source_user_dn=source_user_dn,
            status=status,
            message=message,
            duration_seconds=duration_seconds,
            processed_by=processed_by,
            computer_name=computer_name,
            test_mode=test_mode,
        )

    @property
    def is_summary(self) -> bool:
        return self.operation_id == SUMMARY_OPERATION_ID

    def to_audit_row(self) -> dict[str, Any]:
        """Map the record onto the audit CSV columns (AUDIT_COLUMNS order)."""
        return {
            "OperationId": self.operation_id,
            "Timestamp": self.timestamp.strftime(TIMESTAMP_FMT),
            "SourceUser": self.source_user,
            "SourceDomain": self.source_domain,
            "SourceUserDN": self.source_user_dn,
            "TargetGroup": self.target_group,
            "TargetDomain": self.target_domain,
            "Status": self.status.value if self.status is not None else "",
            "Message": self.message,
            "DurationSeconds": round(self.duration_seconds, 3),
            "ProcessedBy": self.processed_by,
            "ComputerName": self.computer_name,
            "TestMode": self.test_mode,
        }
