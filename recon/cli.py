from __future__ import annotations

import argparse
import os
import sys
from typing import Any, Dict, List, NoReturn, Optional

from dotenv import load_dotenv

from migverify.common import PrintLogger
from migverify.config import ENGINES, VerifyConfig
from migverify.endpoints import AdapterFactory
from migverify.endpoints.base import DataSourceAdapter
from migverify.errors import ConfigError, MigrationVerifyError
from migverify.snapshot.collector import collect_to_file

from .runner import run_verification

MODES = ("collect", "verify")

USAGE_EPILOG = """\
Usage:
  - Collect phase: %(prog)s collect output_file.txt
  - Verify phase:  %(prog)s verify input_file.txt
"""


class _Parser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on bad arguments."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        sys.stderr.write(f"Error: {message}\n")
        raise SystemExit(1)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = _Parser(
        prog="migration-verify",
        description="Record per-entity counts before a migration and verify them afterwards.",
        epilog=USAGE_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("mode", help="collect or verify")
    parser.add_argument("file", help="Snapshot file to write (collect) or read (verify)")
    parser.add_argument("--config", help="Optional JSON configuration file", default=None)
    parser.add_argument("--engine", choices=list(ENGINES), default=None, help="Data source engine (default: mongo)")
    parser.add_argument(
        "--exclude",
        default=None,
        help="Space or comma separated namespaces to exclude (default: admin config local)",
    )
    parser.add_argument("--max-parallel", type=int, default=None, help="Maximum concurrent count queries (verify)")
    parser.add_argument("--query-timeout", type=float, default=None, help="Per-count query timeout in seconds")
    parser.add_argument("--result-dir", default=None, help="Directory for migration-verification-*.txt")
    parser.add_argument("--output-json", default=None, help="Also write verification results as JSON")
    parser.add_argument("--log-file", default=None, help="Append structured log lines to this file")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARN or ERROR")
    args = parser.parse_args(argv)
    if args.mode not in MODES:
        sys.stderr.write(f"Error: Invalid mode '{args.mode}'. Use either 'collect' or 'verify'.\n")
        raise SystemExit(1)
    return args


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "engine": args.engine,
        "excluded_namespaces": args.exclude,
        "max_parallel": args.max_parallel,
        "query_timeout_seconds": args.query_timeout,
        "result_dir": args.result_dir,
        "log_file": args.log_file,
        "log_level": args.log_level,
    }


def run_cli(argv: Optional[List[str]] = None, *, environ: Optional[Dict[str, str]] = None) -> int:
    args = parse_args(argv)
    if environ is None:
        load_dotenv()
    try:
        config = VerifyConfig.load(environ=environ, config_path=args.config, overrides=_overrides(args))
    except ConfigError as exc:
        sys.stderr.write(f"Error: {exc}\n")
        return 1
    logger = PrintLogger(job_name=config.job_name, file_path=config.log_file, level=config.log_level)
    adapter: Optional[DataSourceAdapter] = None
    try:
        if args.mode == "verify" and not os.path.isfile(args.file):
            raise ConfigError(f"Input file '{args.file}' not found!")
        adapter = AdapterFactory.build(config)
        if args.mode == "collect":
            collect_to_file(adapter, config, args.file, logger=logger)
            print(f"Counts saved to: {args.file}")
            return 0
        result, console_text, result_path = run_verification(
            adapter,
            config,
            args.file,
            logger=logger,
            output_json=args.output_json,
        )
        print(console_text)
        print(f"Detailed results saved to: {result_path}")
        return result.exit_code
    except MigrationVerifyError as exc:
        logger.error(f"{args.mode}_failed", kind=type(exc).__name__, err=str(exc))
        sys.stderr.write(f"Error: {exc}\n")
        return 1
    finally:
        if adapter is not None:
            adapter.close()


def main() -> None:
    sys.exit(run_cli())


__all__ = ["main", "parse_args", "run_cli"]
