"""
Command-line interface for synthesizing and comparing provisioning plans.

Examples:
    # List topology variants
    storefront list

    # Print the plan for the container topology
    storefront synth --variant container-pipeline

    # Save it, then check a later synthesis against it
    storefront synth --variant container-pipeline --output plan.json
    storefront diff --variant container-pipeline --against plan.json
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import structlog
from pydantic import ValidationError

from storefront.config import Settings, get_settings
from storefront.core.exceptions import ConfigurationError, StorefrontError
from storefront.topologies import TopologyVariant, diff_plans, get_topology, list_topologies, synthesize

logger = structlog.get_logger(__name__)


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog to emit JSON lines on stderr."""
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level.upper())
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def load_settings() -> Settings:
    """Load settings, turning validation failures into ConfigurationError."""
    try:
        return get_settings()
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid settings: {e.error_count()} error(s): "
            + "; ".join(err["msg"] for err in e.errors()),
        ) from e


def _synth_document(variant: str, settings: Settings) -> dict:
    plan = synthesize(get_topology(TopologyVariant(variant), settings), settings)
    # Round-trip through JSON so fresh and saved plans compare alike
    return json.loads(json.dumps(plan.to_dict()))


def cmd_list(args: argparse.Namespace, settings: Settings) -> int:
    for variant in list_topologies():
        print(variant.value)
    return 0


def cmd_synth(args: argparse.Namespace, settings: Settings) -> int:
    document = json.dumps(_synth_document(args.variant, settings), indent=2, sort_keys=True)
    if args.output:
        Path(args.output).write_text(document + "\n")
        logger.info("plan_written", variant=args.variant, path=args.output)
    else:
        print(document)
    return 0


def cmd_diff(args: argparse.Namespace, settings: Settings) -> int:
    saved = json.loads(Path(args.against).read_text())
    diff = diff_plans(saved, _synth_document(args.variant, settings))
    print(json.dumps(diff.to_dict(), indent=2, sort_keys=True))
    if diff.is_empty:
        logger.info("plan_unchanged", variant=args.variant)
        return 0
    logger.warning(
        "plan_changed",
        variant=args.variant,
        added=sum(len(v) for v in diff.added.values()),
        removed=sum(len(v) for v in diff.removed.values()),
        changed=len(diff.changed),
    )
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="storefront",
        description="Synthesize storefront provisioning plans",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    variants = [v.value for v in TopologyVariant]

    list_parser = subparsers.add_parser("list", help="List topology variants")
    list_parser.set_defaults(handler=cmd_list)

    synth_parser = subparsers.add_parser("synth", help="Print the provisioning plan as JSON")
    synth_parser.add_argument("--variant", "-v", choices=variants, required=True)
    synth_parser.add_argument("--output", "-o", type=str, help="Save the plan to a file instead of printing")
    synth_parser.set_defaults(handler=cmd_synth)

    diff_parser = subparsers.add_parser("diff", help="Compare a saved plan with a fresh synthesis")
    diff_parser.add_argument("--variant", "-v", choices=variants, required=True)
    diff_parser.add_argument("--against", "-a", type=str, required=True, help="Saved plan file")
    diff_parser.set_defaults(handler=cmd_diff)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point. Returns the process exit status."""
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings()
        configure_logging(settings.log_level)
        return args.handler(args, settings)
    except StorefrontError as e:
        logger.error("command_failed", command=args.command, error=e.message, details=e.details)
        return 2


if __name__ == "__main__":
    sys.exit(main())
