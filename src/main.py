"""
Command line entry point for Catalog Composer.

Usage:
    catalog-composer init
    catalog-composer weight DINING-SET-001
    catalog-composer tree DINING-SET-001
    catalog-composer available
    catalog-composer integrity
    catalog-composer stats
    catalog-composer enable-variations DINING-SET-001
    catalog-composer disable-variations DINING-SET-001 --strategy=merge-all
    catalog-composer backups DINING-SET-001

Exit Codes:
    0 - Success
    1 - Failure (error message printed to stderr)
"""

import argparse
import logging
import sys
from typing import Any, Dict

from src.services.backup_service import BackupService
from src.services.composition_service import CompositionService
from src.services.database import initialize_app_database
from src.services.exceptions import ServiceError, get_user_friendly_message
from src.services.product_service import ProductService
from src.services.transition_service import TransitionService
from src.utils.config import get_config
from src.utils.constants import MERGE_STRATEGIES, MERGE_STRATEGY_FIRST_VARIATION

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def print_tree(node: Dict[str, Any], indent: int = 0) -> None:
    """Print a composition tree, one node per line."""
    prefix = "  " * indent
    quantity = f"{node['quantity']} x " if indent else ""
    print(f"{prefix}{quantity}{node['sku']} ({node['name']}) - {node['calculated_weight']:g}")
    for child in node["children"]:
        print_tree(child, indent + 1)


def print_progress(event: Dict[str, Any]) -> None:
    print(
        f"[{event['current_step']}/{event['total_steps']}] {event['progress']}% "
        f"{event['step_name']}: {event['message']}"
    )


def _cmd_init(args) -> int:
    initialize_app_database()
    print(f"Database ready at {get_config().database_url}")
    return EXIT_SUCCESS


def _cmd_weight(args) -> int:
    weight = ProductService().get_effective_weight(args.sku)
    print(f"{args.sku}: {weight if weight is not None else 'no weight set'}")
    return EXIT_SUCCESS


def _cmd_tree(args) -> int:
    print_tree(CompositionService().get_composition_tree(args.sku, max_depth=args.max_depth))
    return EXIT_SUCCESS


def _cmd_available(args) -> int:
    for entry in CompositionService().get_composition_available_items():
        print(f"{entry['sku']:<50} {entry['type']:<10} {entry['weight']:>8g}  {entry['display_name']}")
    return EXIT_SUCCESS


def _cmd_integrity(args) -> int:
    result = CompositionService().validate_composition_integrity()
    if result["valid"]:
        print("All composition items are valid")
        return EXIT_SUCCESS

    for item in result["orphaned_items"]:
        print(f"Orphaned: {item}")
    for sku in result["missing_children"]:
        print(f"Missing child: {sku}")
    for item in result["invalid_items"]:
        print(f"Invalid: {item['child_sku']} - {item['error']}")
    return EXIT_FAILURE


def _cmd_stats(args) -> int:
    for key, value in ProductService().get_product_stats().items():
        print(f"{key}: {value}")
    return EXIT_SUCCESS


def _run_transition(sku: str, target_flags: Dict[str, bool], strategy: str) -> int:
    result = TransitionService().execute_transition(
        sku, target_flags, merge_strategy=strategy, on_progress=print_progress
    )
    if not result["success"]:
        print(f"Error: {result['message']}: {result['error']}", file=sys.stderr)
        return EXIT_FAILURE
    print(result["message"])
    return EXIT_SUCCESS


def _cmd_enable_variations(args) -> int:
    return _run_transition(
        args.sku, {"is_composite": True, "has_variation": True}, MERGE_STRATEGY_FIRST_VARIATION
    )


def _cmd_disable_variations(args) -> int:
    return _run_transition(args.sku, {"is_composite": True, "has_variation": False}, args.strategy)


def _cmd_backups(args) -> int:
    backups = BackupService().get_backups_for_product(args.sku)
    if not backups:
        print(f"No backups for {args.sku}")
    for backup in backups:
        print(
            f"{backup.id}  {backup.timestamp.isoformat()}  {backup.metadata['operation']}  "
            f"items={len(backup.original_composition_items)} "
            f"variations={len(backup.original_variations)}"
        )
    return EXIT_SUCCESS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalog-composer",
        description="Manage composite and variable products in the catalog",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")
    subparsers.required = True

    init_parser = subparsers.add_parser("init", help="Create the database tables")
    init_parser.set_defaults(handler=_cmd_init)

    weight_parser = subparsers.add_parser("weight", help="Show a product's effective weight")
    weight_parser.add_argument("sku", help="Product SKU")
    weight_parser.set_defaults(handler=_cmd_weight)

    tree_parser = subparsers.add_parser("tree", help="Show a product's composition tree")
    tree_parser.add_argument("sku", help="Product SKU or <SKU>#<variationId>")
    tree_parser.add_argument("--max-depth", type=int, default=None, help="Maximum nesting depth")
    tree_parser.set_defaults(handler=_cmd_tree)

    available_parser = subparsers.add_parser(
        "available", help="List everything that can be added to a composition"
    )
    available_parser.set_defaults(handler=_cmd_available)

    integrity_parser = subparsers.add_parser("integrity", help="Audit all composition items")
    integrity_parser.set_defaults(handler=_cmd_integrity)

    stats_parser = subparsers.add_parser("stats", help="Show product counts by type")
    stats_parser.set_defaults(handler=_cmd_stats)

    enable_parser = subparsers.add_parser(
        "enable-variations", help="Move a composite product's composition into 'Variation 1'"
    )
    enable_parser.add_argument("sku", help="Composite product SKU")
    enable_parser.set_defaults(handler=_cmd_enable_variations)

    disable_parser = subparsers.add_parser(
        "disable-variations", help="Merge variation compositions back into the product"
    )
    disable_parser.add_argument("sku", help="Composite+variable product SKU")
    disable_parser.add_argument(
        "--strategy",
        choices=MERGE_STRATEGIES,
        default=MERGE_STRATEGY_FIRST_VARIATION,
        help="Which composition survives (default: first-variation)",
    )
    disable_parser.set_defaults(handler=_cmd_disable_variations)

    backups_parser = subparsers.add_parser("backups", help="List migration backups of a product")
    backups_parser.add_argument("sku", help="Product SKU")
    backups_parser.set_defaults(handler=_cmd_backups)

    return parser


def main(args=None) -> int:
    """Main CLI entry point."""
    parsed_args = build_parser().parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if parsed_args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if parsed_args.command != "init":
        initialize_app_database()

    try:
        return parsed_args.handler(parsed_args)
    except ServiceError as e:
        print(f"Error: {get_user_friendly_message(e)}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
