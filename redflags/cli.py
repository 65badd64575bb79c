from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from .awards import load_awards, load_transactions
from .config_schema import load_config
from .consolidator import consolidate_signals
from .convergence import compute_convergence
from .engine import run_engine
from .errors import RedFlagsError
from .signals import QueryContext


def _read_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _award_rows(data: Any) -> List[Dict[str, Any]]:
    # Accept a bare list or an object with a "results"/"awards" list.
    if isinstance(data, dict):
        data = data.get("awards") or data.get("results") or []
    return list(data)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Procurement red-flag screening batch")
    parser.add_argument("--awards", required=True, help="JSON file with normalized award records")
    parser.add_argument(
        "--transactions", help="JSON file mapping award id -> list of transaction records"
    )
    parser.add_argument("--config", help="YAML config file (defaults to $REDFLAGS_CONFIG or shipped defaults)")
    parser.add_argument("--indicators", nargs="+", metavar="ID", help="only run these indicators, e.g. R001 R004")
    parser.add_argument("--recipient", help="recipient filter the awards were collected with")
    parser.add_argument("--agency", help="agency filter the awards were collected with")
    parser.add_argument("--max-findings", type=int, help="override materiality.max_findings")
    parser.add_argument("--verbose", action="store_true", help="debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        stream=sys.stderr,
    )
    logger = logging.getLogger("CLI")

    query_context = None
    if args.recipient or args.agency:
        query_context = QueryContext.from_filters(recipient=args.recipient, agency=args.agency)

    try:
        cfg = load_config(Path(args.config) if args.config else None)
        if args.max_findings is not None:
            cfg.materiality.max_findings = args.max_findings
        awards = load_awards(_award_rows(_read_json(args.awards)))
        transactions = load_transactions(_read_json(args.transactions)) if args.transactions else None
        result = run_engine(
            cfg,
            awards,
            transactions,
            indicator_filter=args.indicators,
            query_context=query_context,
        )
    except (RedFlagsError, OSError, json.JSONDecodeError, yaml.YAMLError, ValidationError) as exc:
        logger.error("%s", exc)
        return 2

    findings = consolidate_signals(result.signals, awards, cfg.materiality)
    convergence = compute_convergence(findings)

    out = result.to_dict()
    out["findings"] = [f.to_dict() for f in findings]
    out["convergence"] = [c.to_dict() for c in convergence]
    json.dump(out, sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")
    logger.info(
        "%d awards, %d signals, %d findings, %d convergent entities",
        len(awards),
        len(result.signals),
        len(findings),
        len(convergence),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
