"""Command line entry point for the Azure VM inventory exporter."""
import argparse
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from .errors import ConfigurationError, InventoryError
from .runner import InventoryRunner
from .settings import OUTPUT_FORMATS, Settings, load_settings

logger = logging.getLogger("azure_vm_inventory")


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export Azure virtual machine inventory to CSV/XLSX.")
    parser.add_argument(
        "--subscription",
        action="append",
        help="Subscription ID or display name to include (repeatable). Defaults to all accessible subscriptions.",
    )
    parser.add_argument("--out-dir", help="Output directory (default: INVENTORY_OUT_DIR or ./out)")
    parser.add_argument("--format", choices=OUTPUT_FORMATS, help="Output format (default: csv)")
    parser.add_argument("--nic-slots", type=int, help="Number of NIC column groups per VM (1-8, default 2)")
    parser.add_argument("--no-classic", action="store_true", help="Skip classic (ASM) virtual machines")
    parser.add_argument("--env-file", help="Path to .env file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides = {}
    if args.subscription:
        overrides["subscriptions"] = [s.strip() for s in args.subscription if s and s.strip()]
    if args.out_dir:
        overrides["out_dir"] = Path(args.out_dir)
    if args.format:
        overrides["output_format"] = args.format
    if args.nic_slots is not None:
        overrides["nic_slots"] = min(max(args.nic_slots, 1), 8)
    if args.no_classic:
        overrides["include_classic"] = False
    if args.debug:
        overrides["log_level"] = "DEBUG"
    return dataclasses.replace(settings, **overrides) if overrides else settings


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    settings = apply_overrides(load_settings(args.env_file), args)
    setup_logging(settings.log_level)

    if not settings.azure_configured:
        logger.error("Azure configuration incomplete, missing: %s", ", ".join(settings.azure_missing_envs))
        return 2

    runner = InventoryRunner(settings)
    try:
        report = runner.execute()
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return 2
    except InventoryError as exc:
        logger.error("Inventory failed: %s", exc)
        return 1
    finally:
        runner.client.close()

    summary = report["summary"]
    logger.info(
        "Done: %s/%s subscriptions, %s ARM rows, %s classic rows in %ss (report: %s)",
        summary["subscriptions_ok"],
        summary["subscriptions_targeted"],
        summary["rows_arm"],
        summary["rows_classic"],
        summary["duration_sec"],
        runner.report_path,
    )
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
