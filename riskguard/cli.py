"""Command-line entry point for riskguard operations.

Usage:
    riskguard init-db
    riskguard load-rules rules.yaml
    riskguard detect-rings snapshot.json
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

import structlog
import yaml

from riskguard.config import settings
from riskguard.domains.risk.errors import RuleCompileError
from riskguard.domains.risk.fraud_rings import FraudRingDetector
from riskguard.domains.risk.models import RelationEdge, RiskRule
from riskguard.domains.risk.rules import compile_rule
from riskguard.shared.logging import setup_logging

logger = structlog.get_logger()


def parse_rules_file(path: str | Path) -> list[RiskRule]:
    with open(path) as f:
        document = yaml.safe_load(f) or {}
    entries = document.get("rules", []) if isinstance(document, dict) else document
    return [RiskRule.model_validate(entry) for entry in entries]


def parse_snapshot_file(path: str | Path) -> tuple[int, list[RelationEdge]]:
    with open(path) as f:
        snapshot = json.load(f)
    edges = []
    for edge in snapshot.get("edges", []):
        if isinstance(edge, dict):
            edges.append(RelationEdge.model_validate(edge))
        else:
            edges.append(RelationEdge(source=edge[0], target=edge[1]))
    return int(snapshot["actor_count"]), edges


def detect_rings(path: str | Path) -> list[list[int]]:
    actor_count, edges = parse_snapshot_file(path)
    rings = FraudRingDetector().detect(actor_count, edges)
    return [list(ring.members) for ring in rings]


async def _init_db() -> None:
    from riskguard.db.database import engine, init_db

    await init_db()
    await engine.dispose()


async def _load_rules(path: str) -> int:
    from riskguard.db.database import async_session_factory, engine
    from riskguard.domains.risk.repository import SqlRiskRepository

    repository = SqlRiskRepository(async_session_factory)
    saved = 0
    for rule in parse_rules_file(path):
        try:
            compile_rule(rule)
        except RuleCompileError as exc:
            logger.warning("rule_rejected", rule_name=rule.name, error=str(exc))
            continue
        await repository.save_rule(rule)
        saved += 1
    await engine.dispose()
    logger.info("rules_seeded", saved=saved, path=path)
    return saved


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="riskguard operations")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("init-db", help="Create database tables")
    load = sub.add_parser("load-rules", help="Seed rules from a YAML file")
    load.add_argument("path", help="YAML file with a top-level 'rules' list")
    rings = sub.add_parser("detect-rings", help="Detect fraud rings in a relationship snapshot")
    rings.add_argument("path", help='JSON file: {"actor_count": N, "edges": [[a, b], ...]}')

    args = parser.parse_args(argv)
    setup_logging(settings.log_level, stream=sys.stderr)

    if args.command == "init-db":
        asyncio.run(_init_db())
    elif args.command == "load-rules":
        asyncio.run(_load_rules(args.path))
    elif args.command == "detect-rings":
        json.dump({"rings": detect_rings(args.path)}, sys.stdout)
        sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
