from __future__ import annotations

import getpass
import logging
import os
import socket
import threading
import time
from collections.abc import Callable, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from ..directory.client import DirectoryClient, DirectoryError, DirectoryUser
from ..input.reader import InputReadError, MissingColumnsError, read_input_table
from ..logging.audit_log import AuditLogBuffer, PersistenceError
from ..models.batch_summary import BatchResult, BatchSummary, SummaryAccumulator
from ..models.config_models import BatchConfig
from ..models.membership_request import InvalidRowError, MembershipRequest
from ..models.operation_record import SUMMARY_OPERATION_ID, OperationRecord, OperationStatus
from ..models.preflight import ConnectivityReport, CredentialValidationResult
from ..models.row_data import RowData
from .error_classifier import ErrorCategory, classify_error
from .preflight import ConnectivityProbe, CredentialValidator
from .progress import ProgressTracker
from .retry import RetryExecutor

"""Batch membership processor.

Coordinates one run:
1. Read and column-check the input table (unless rows are handed in)
2. Parse every row into a MembershipRequest once; invalid rows become "skipped"
3. Optional pre-flight checks over the distinct source/target domains
4. Process rows sequentially, in input order. Each row is isolated: whatever
   it raises is classified and recorded, and the next row runs
5. Append the SUMMARY record and write the audit CSV

Only SetupError escapes run(), and only before the first row is touched.
"""

__all__ = [
    "BatchProcessor",
    "CancellationToken",
    "SetupError",
]

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[str], bool]


class SetupError(Exception):
    """Fatal pre-batch failure; no directory mutation has been attempted."""


class CancellationToken:
    """Cooperative stop signal, checked between rows."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def _current_actor() -> tuple[str, str]:
    try:
        user = getpass.getuser()
    except (OSError, KeyError):
        user = os.environ.get("USERNAME") or os.environ.get("USER") or "unknown"
    return user, socket.gethostname()


class BatchProcessor:
    """Apply membership requests against the directory, one row at a time."""

    def __init__(
        self,
        config: BatchConfig,
        client: DirectoryClient | None,
        *,
        retry_executor: RetryExecutor | None = None,
        confirm: ConfirmCallback | None = None,
        cancel_token: CancellationToken | None = None,
        actor: tuple[str, str] | None = None,
    ) -> None:
        self.config = config
        self.client = client
        self.retry = retry_executor or RetryExecutor()
        self.confirm = confirm
        self.cancel_token = cancel_token or CancellationToken()
        self.processed_by, self.computer_name = actor or _current_actor()
        self.connectivity_report: ConnectivityReport | None = None
        self.credential_results: dict[str, CredentialValidationResult] = {}

    @property
    def _directory(self) -> DirectoryClient:
        if self.client is None:
            raise SetupError("directory service client not available")
        return self.client

    # -- setup --------------------------------------------------------------

    def load_rows(self) -> list[RowData]:
        try:
            table = read_input_table(self.config.input_path)
        except (InputReadError, MissingColumnsError) as e:
            raise SetupError(str(e)) from e
        logger.info("input: %s rows=%d", table.path, len(table.rows))
        return table.rows

    def _check_output_dir(self) -> None:
        out = Path(self.config.output_dir)
        try:
            out.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SetupError(f"output directory cannot be created: {out} ({e})") from e
        if not os.access(out, os.W_OK):
            raise SetupError(f"output directory not writable: {out}")

    @staticmethod
    def _parse(rows: Sequence[RowData]) -> list[MembershipRequest | InvalidRowError]:
        parsed: list[MembershipRequest | InvalidRowError] = []
        for row in rows:
            try:
                parsed.append(MembershipRequest.from_row(row.values, row.row_number))
            except InvalidRowError as e:
                parsed.append(e)
        return parsed

    def _run_preflight(self, domains: set[str]) -> list[str]:
        """Run the enabled pre-flight checks; return warnings.

        Raises:
            SetupError: checks failed in live mode and the operator did not confirm.
        """
        client = self._directory
        problems: list[str] = []
        if self.config.test_connectivity_first:
            probe = ConnectivityProbe(
                client,
                port=self.config.directory.port,
                host_for=self.config.directory.server_for,
            )
            report = probe.probe(domains, self.config.connectivity_timeout_seconds)
            self.connectivity_report = report
            logger.info(
                "pre-flight: %d domain(s) probed, %d unreachable",
                len(report),
                len(report.unreachable_domains),
            )
            if report.unreachable_domains:
                problems.append(f"unreachable domains: {', '.join(report.unreachable_domains)}")
            if report.domains_without_controller:
                problems.append(
                    "no domain controller found for: "
                    + ", ".join(report.domains_without_controller)
                )
        if self.config.validate_credentials_first:
            validator = CredentialValidator(client)
            self.credential_results = validator.validate_all(self.config.credential, domains)
            rejected = sorted(d for d, r in self.credential_results.items() if not r.is_valid)
            if rejected:
                problems.append(f"credential not valid for: {', '.join(rejected)}")

        if not problems:
            return []
        text = "; ".join(problems)
        if self.config.test_mode:
            logger.warning("pre-flight: %s (test mode, continuing)", text)
            return [f"pre-flight: {text}"]
        if self.config.assume_yes:
            logger.warning("pre-flight: %s (continuing, confirmation skipped)", text)
            return [f"pre-flight: {text}"]
        if self.confirm is None or not self.confirm(text):
            raise SetupError(f"pre-flight checks failed: {text}")
        logger.warning("pre-flight: %s (operator chose to continue)", text)
        return [f"pre-flight: {text}"]

    # -- per row ------------------------------------------------------------

    def _verify_member(self, user: DirectoryUser, request: MembershipRequest) -> None:
        client = self._directory
        members = client.list_group_members(
            request.target_group, request.target_domain, self.config.credential
        )
        keys = {user.sam_account_name.lower()}
        if user.sid:
            keys.add(user.sid.lower())
        if not keys & members:
            raise DirectoryError(
                f"membership of {request.source_identity} in {request.target_identity} not yet visible"
            )

    def _apply_live(self, request: MembershipRequest, state: dict[str, Any]) -> bool:
        """Resolve + add (+ verify). Returns True when the user was already a member.

        ``state`` survives between retry attempts so a completed add is not repeated
        while only the verification is being retried.
        """
        client = self._directory
        cred = self.config.credential
        user = state.get("user")
        if user is None:
            user = client.lookup_user(request.source_user, request.source_domain, cred)
            state["user"] = user
        if not state.get("added"):
            try:
                client.add_group_member(
                    request.target_group, user, request.target_domain, cred, dry_run=False
                )
            except Exception as e:
                if classify_error(str(e)) is ErrorCategory.ALREADY_EXISTS:
                    return True
                raise
            state["added"] = True
        if self.config.verify_membership:
            self._verify_member(user, request)
        return False

    def _apply_test(self, request: MembershipRequest, state: dict[str, Any]) -> None:
        client = self._directory
        cred = self.config.credential
        user = client.lookup_user(request.source_user, request.source_domain, cred)
        state["user"] = user
        client.add_group_member(
            request.target_group, user, request.target_domain, cred, dry_run=True
        )

    def process_request(self, request: MembershipRequest) -> OperationRecord:
        """Run one request through the row state machine; never raises."""
        operation_id = OperationRecord.new_operation_id()
        state: dict[str, Any] = {}
        started = time.perf_counter()
        try:
            if self.config.test_mode:
                self._apply_test(request, state)
                status = OperationStatus.TEST_SUCCESS
                message = f"Test mode: {request.source_identity} can be added to {request.target_identity}"
            else:
                already = self.retry.execute(
                    lambda: self._apply_live(request, state),
                    max_retries=self.config.max_retries,
                    initial_delay=self.config.retry_delay_seconds,
                    use_exponential_backoff=self.config.exponential_backoff,
                    retryable_error_patterns=self.config.retryable_error_patterns,
                    description=f"{request.source_identity} -> {request.target_identity}",
                )
                if already:
                    status = OperationStatus.ALREADY_MEMBER
                    message = f"{request.source_identity} is already a member of {request.target_identity}"
                else:
                    status = OperationStatus.SUCCESS
                    message = f"Added {request.source_identity} to {request.target_identity}"
        except Exception as e:
            category = classify_error(str(e))
            if category is ErrorCategory.ALREADY_EXISTS:
                status = OperationStatus.ALREADY_MEMBER
                message = f"{request.source_identity} is already a member of {request.target_identity}"
            else:
                status = OperationStatus.ERROR
                message = f"[{category.value}] {e}"
        duration = time.perf_counter() - started

        user = state.get("user")
        return OperationRecord.for_request(
            request,
            operation_id=operation_id,
            status=status,
            message=message,
            duration_seconds=duration,
            processed_by=self.processed_by,
            computer_name=self.computer_name,
            test_mode=self.config.test_mode,
            source_user_dn=user.distinguished_name if user is not None else "",
        )

    # -- run ----------------------------------------------------------------

    def _summary_record(self, summary: BatchSummary) -> OperationRecord:
        return OperationRecord(
            operation_id=SUMMARY_OPERATION_ID,
            timestamp=datetime.now(),
            source_domain="",
            source_user="",
            target_domain="",
            target_group="",
            source_user_dn="",
            status=None,
            message=summary.to_message(),
            duration_seconds=summary.total_duration_seconds,
            processed_by=self.processed_by,
            computer_name=self.computer_name,
            test_mode=self.config.test_mode,
        )

    def run(self, rows: Sequence[RowData] | None = None) -> BatchResult:
        """Process the whole batch.

        Args:
            rows: pre-read input rows; None reads config.input_path

        Raises:
            SetupError: unreadable input, no valid rows, unwritable output
                directory, missing directory client, or declined pre-flight.
        """
        started_at = datetime.now()
        started = time.perf_counter()

        if self.client is None:
            raise SetupError("directory service client not available")
        if rows is None:
            rows = self.load_rows()
        self._check_output_dir()

        parsed = self._parse(rows)
        requests = [p for p in parsed if isinstance(p, MembershipRequest)]
        if not requests:
            raise SetupError(f"no valid rows in input ({len(rows)} read)")

        domains = {r.source_domain for r in requests} | {r.target_domain for r in requests}
        warnings = self._run_preflight(domains)

        mode = "test" if self.config.test_mode else "live"
        logger.info(
            "batch start mode=%s rows=%d valid=%d domains=%d",
            mode,
            len(parsed),
            len(requests),
            len(domains),
        )

        audit = AuditLogBuffer(self.config.output_dir, started_at=started_at)
        counters = SummaryAccumulator()
        cancelled = False

        with ProgressTracker(len(parsed), description="Processing rows") as progress:
            for item in parsed:
                if self.cancel_token.cancelled:
                    cancelled = True
                    logger.warning("cancellation requested, stopping before row %d", item.row_number)
                    break

                if isinstance(item, InvalidRowError):
                    progress.start_row(f"row {item.row_number}")
                    counters.add(OperationStatus.SKIPPED)
                    logger.warning("skipped: %s", item)
                    progress.finish_row(OperationStatus.SKIPPED.value)
                    continue

                progress.start_row(item.source_identity)
                record = self.process_request(item)
                audit.append(record)
                counters.add(record.status)

                if record.status is OperationStatus.ERROR:
                    logger.error(
                        "row %d %s -> %s: %s",
                        item.row_number,
                        item.source_identity,
                        item.target_identity,
                        record.message,
                    )
                else:
                    logger.info(
                        "row %d %s -> %s: %s",
                        item.row_number,
                        item.source_identity,
                        item.target_identity,
                        record.status.value,
                    )
                progress.finish_row(record.status.value)

        summary = counters.build(time.perf_counter() - started)
        audit.append(self._summary_record(summary))
        records = audit.records

        log_path: Path | None = None
        log_fallback = False
        try:
            outcome = audit.flush()
            log_path = outcome.path
            log_fallback = outcome.used_fallback
            if outcome.warning:
                warnings.append(outcome.warning)
        except PersistenceError as e:
            logger.warning("%s", e)
            warnings.append(str(e))

        return BatchResult(
            success=summary.error_count == 0 and not cancelled,
            summary=summary,
            records=records,
            log_path=log_path,
            log_fallback=log_fallback,
            warnings=warnings,
            cancelled=cancelled,
        )
