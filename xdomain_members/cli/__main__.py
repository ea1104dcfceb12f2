from __future__ import annotations

import argparse
import signal
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from xdomain_members.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from xdomain_members.directory.client import LdapDirectoryClient
from xdomain_members.input.reader import InputReadError, MissingColumnsError, read_input_table
from xdomain_members.logging.init import log_summary, register_secret, set_debug, setup_logging
from xdomain_members.services.batch_processor import BatchProcessor, CancellationToken, SetupError
from xdomain_members.services.summary import render_summary_line

"""CLI entrypoint.

Flow:
- Load .env (credentials), then the YAML config merged with CLI flags
- Build the ldap3 directory client and the BatchProcessor
- Run the batch, print the SUMMARY line, map the outcome to an exit code

The first Ctrl-C requests a cooperative stop between rows (the partial audit
log is still written); a second one aborts immediately.
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv.

    override=True lets .env win over already-exported variables so the
    credential used is the one configured next to the job.
    """
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Bulk-add users to groups across directory domains")
    p.add_argument("--config", type=Path, default=None, help=f"YAML config (default {DEFAULT_CONFIG_PATH})")
    p.add_argument("--input", dest="input_path", help="Input CSV/XLSX (overrides config)")
    p.add_argument("--output-dir", dest="output_dir", help="Audit log directory (overrides config)")
    p.add_argument("--test-mode", action="store_true", default=None, help="Dry-run: resolve and check permissions only")
    p.add_argument("--max-retries", type=int, default=None, help="Retries per row, 1-10")
    p.add_argument("--retry-delay", dest="retry_delay_seconds", type=int, default=None, help="Initial retry delay seconds, 1-60")
    p.add_argument("--exponential-backoff", action="store_true", default=None, help="Double the delay after each retry")
    p.add_argument("--validate-credentials", dest="validate_credentials_first", action="store_true", default=None,
                   help="Validate the credential against every domain first")
    p.add_argument("--test-connectivity", dest="test_connectivity_first", action="store_true", default=None,
                   help="Probe every domain before processing")
    p.add_argument("--yes", dest="assume_yes", action="store_true", default=None,
                   help="Continue past pre-flight warnings without asking")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-input", action="store_true", help="Print input columns & first rows then exit")
    return p.parse_args(argv)


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    keys = (
        "input_path",
        "output_dir",
        "test_mode",
        "max_retries",
        "retry_delay_seconds",
        "exponential_backoff",
        "validate_credentials_first",
        "test_connectivity_first",
        "assume_yes",
    )
    return {k: getattr(args, k) for k in keys if getattr(args, k) is not None}


def _inspect_input(path: Path) -> int:
    try:
        table = read_input_table(path)
    except (InputReadError, MissingColumnsError) as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    print(f"FILE: {table.path.name} cols={table.columns} rows={len(table.rows)}")
    for row in table.rows[:5]:
        print(f"  row {row.row_number}: {row.values}")
    return EXIT_SUCCESS_ALL


def _confirm_on_tty(message: str) -> bool:
    """Ask the operator whether to continue; non-interactive sessions decline."""
    if not sys.stdin.isatty():
        return False
    answer = input(f"Pre-flight checks reported problems: {message}\nContinue anyway? [y/N] ")
    return answer.strip().lower() in ("y", "yes")


def _install_cancel_handler(token: CancellationToken) -> Any:
    """Route SIGINT to the token; returns the previous handler (None if not installed)."""
    def _handler(signum, frame):  # pragma: no cover - signal path
        if token.cancelled:
            raise KeyboardInterrupt
        token.cancel()

    try:
        return signal.signal(signal.SIGINT, _handler)
    except ValueError:  # pragma: no cover - not in main thread
        return None


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # An empty list must not fall back to sys.argv (pytest passes its own flags there)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        set_debug(logger)
        logger.debug("debug mode enabled")

    config_path = args.config or DEFAULT_CONFIG_PATH
    if args.config is None and not config_path.exists() and args.input_path and args.output_dir:
        config_path = None  # flags alone are enough

    if args.inspect_input:
        if args.input_path:
            return _inspect_input(Path(args.input_path))
        try:
            cfg = load_config(config_path, _overrides(args))
        except ConfigError as e:
            logger.error(f"config: {e}")
            return EXIT_FATAL
        return _inspect_input(cfg.input_path)

    try:
        cfg = load_config(config_path, _overrides(args))
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    register_secret(cfg.credential.password)
    logger.info(f"Processing {cfg.input_path} (mode={'test' if cfg.test_mode else 'live'})")

    token = CancellationToken()
    previous_handler = _install_cancel_handler(token)
    processor = BatchProcessor(
        cfg,
        LdapDirectoryClient(cfg.directory),
        confirm=_confirm_on_tty,
        cancel_token=token,
    )
    try:
        result = processor.run()
    except SetupError as e:
        logger.error(f"setup: {e}")
        return EXIT_FATAL
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)

    for warning in result.warnings:
        logger.warning(warning)
    if result.log_path is not None:
        where = "audit log (fallback)" if result.log_fallback else "audit log"
        logger.info(f"{where}: {result.log_path}")
    if result.cancelled:
        logger.warning("run cancelled before all rows were processed")

    summary_line = render_summary_line(result.summary, test_mode=cfg.test_mode)
    # log_summary adds the "SUMMARY " label itself
    log_summary(summary_line[len("SUMMARY "):])

    if result.summary.error_count > 0 or result.cancelled:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
