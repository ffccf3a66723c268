#!/usr/bin/env python3
"""CLI entrypoint for the content-package converter.

Converts the given archives in dependency order and writes a JSON result
envelope to stdout. Log output goes to stderr.

Usage:
    python3 -m cp_convert -a out/artifacts -o out/manifests site.tar.gz base.tar.gz
    python3 -m cp_convert --config converter.yaml --failure-policy continue *.tar.gz
    python3 -m cp_convert --order-only -a out -o out *.tar.gz

Exit codes:
    0  All packages converted
    1  Error (invalid config, cyclic dependencies, failed package)
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from cp_convert import __version__
from cp_convert.config import FAILURE_POLICIES, load_config
from cp_convert.exceptions import ConversionError
from cp_convert.orchestrator import ConversionOrchestrator

logger = logging.getLogger("cp_convert")


def make_response(
    status: str,
    result: Any = None,
    error: Dict[str, Any] = None,
    duration_ms: Optional[int] = None,
) -> Dict[str, Any]:
    """Build standard response envelope."""
    response = {"status": status}

    if result is not None:
        response["result"] = result

    if error is not None:
        response["error"] = error

    if duration_ms is not None:
        response["duration_ms"] = duration_ms

    return response


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cp_convert",
        description="Convert content-packages into deployment artifacts and initialization scripts",
    )
    parser.add_argument("archives", nargs="+", type=Path, help="Content-package archive(s)")
    parser.add_argument("-c", "--config", type=Path, help="YAML config file")
    parser.add_argument("-a", "--artifacts-dir", type=Path, help="Output directory for deployed artifacts")
    parser.add_argument("-o", "--manifests-dir", type=Path, help="Output directory for manifests")
    parser.add_argument("-w", "--work-dir", type=Path, help="Staging directory for work buffers")
    parser.add_argument("-f", "--filtering-pattern", action="append", dest="filtering_patterns",
                        help="Regex rejecting archive entries (repeatable)")
    parser.add_argument("--handler", action="append", dest="handlers", metavar="PATTERN=MODULE:ATTR",
                        help="Register an entry classifier (repeatable)")
    parser.add_argument("--failure-policy", choices=FAILURE_POLICIES,
                        help="What to do after a package fails (default: abort)")
    parser.add_argument("--order-only", action="store_true", help="Only print the resolved package order")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug output")
    parser.add_argument("-q", "--quiet", action="store_true", help="Log errors only")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    level = logging.INFO
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s", stream=sys.stderr)


def _parse_handlers(specs: Optional[List[str]]) -> Optional[Dict[str, str]]:
    if not specs:
        return None
    handlers = {}
    for spec in specs:
        pattern, sep, target = spec.rpartition("=")
        if not sep or not pattern:
            raise ValueError(f"Invalid --handler {spec!r}, expected PATTERN=MODULE:ATTR")
        handlers[pattern] = target
    return handlers


def run(args: argparse.Namespace) -> Dict[str, Any]:
    config = load_config(
        args.config,
        artifacts_dir=args.artifacts_dir,
        manifests_dir=args.manifests_dir,
        work_dir=args.work_dir,
        filtering_patterns=args.filtering_patterns,
        entry_handlers=_parse_handlers(args.handlers),
        failure_policy=args.failure_policy,
    )
    orchestrator = ConversionOrchestrator(config)

    if args.order_only:
        ordered = orchestrator.order(args.archives)
        return make_response("ok", result={"order": [str(p.identity) for p in ordered]})

    results = orchestrator.convert(args.archives)
    status = "ok" if all(r.ok for r in results) else "error"
    return make_response(status, result={"packages": [r.to_dict() for r in results]})


def main(argv: Optional[List[str]] = None) -> int:
    """Main entrypoint."""
    start_time = time.time()
    args = parse_args(argv)
    configure_logging(args.verbose, args.quiet)

    try:
        response = run(args)
    except ConversionError as e:
        logger.error("Unable to convert content-package(s) %s: %s",
                     ", ".join(str(a) for a in args.archives), e.message)
        response = make_response("error", error=e.to_dict())
    except ValueError as e:
        logger.error("%s", e)
        response = make_response("error", error={"code": "INVALID_ARGUMENT", "message": str(e)})

    response["duration_ms"] = int((time.time() - start_time) * 1000)
    print(json.dumps(response, indent=2, ensure_ascii=False))
    return 0 if response.get("status") == "ok" else 1


if __name__ == "__main__":
    sys.exit(main())
