"""Domain models for the bulk cross-domain membership tool."""

from .batch_summary import BatchResult, BatchSummary, SummaryAccumulator
from .config_models import BatchConfig, Credential, DirectoryConfig
from .membership_request import REQUIRED_COLUMNS, InvalidRowError, MembershipRequest
from .operation_record import AUDIT_COLUMNS, SUMMARY_OPERATION_ID, OperationRecord, OperationStatus
from .preflight import ConnectivityReport, CredentialValidationResult, DomainConnectivityResult
from .row_data import RowData

__all__ = [
    # Configuration models
    "BatchConfig",
    "Credential",
    "DirectoryConfig",
    # Input models
    "REQUIRED_COLUMNS",
    "InvalidRowError",
    "MembershipRequest",
    "RowData",
    # Result models
    "AUDIT_COLUMNS",
    "SUMMARY_OPERATION_ID",
    "BatchResult",
    "BatchSummary",
    "OperationRecord",
    "OperationStatus",
    "SummaryAccumulator",
    # Pre-flight models
    "ConnectivityReport",
    "CredentialValidationResult",
    "DomainConnectivityResult",
]
