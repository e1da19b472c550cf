"""
WMS Seed CLI

Seeds test orders into a staging Shopify store and the WMS mirror, and cleans
them up again.

Usage:
    # Seed from a config file
    wms-seed seed orders.json

    # Preview without touching Shopify or the database
    wms-seed seed orders.json --dry-run

    # Keep going past individual order failures
    wms-seed seed orders.json --continue-on-error

    # Remove the WMS rows for a batch
    wms-seed cleanup --batch-id 3f2b... --dry-run

Environment:
    DATABASE_URL, SHOPIFY_STORE_DOMAIN, SHOPIFY_ACCESS_TOKEN (required);
    see order_seeder.core.config.Settings for the rest.
"""
import argparse
import asyncio
import json
import logging
import sys
import uuid
from typing import Any, Dict, List, Optional

from order_seeder.core.config import Settings, load_settings
from order_seeder.core.database import create_engine_and_sessionmaker
from order_seeder.core.exceptions import ConfigurationError, SeederBaseError
from order_seeder.core.guardrails import describe_environment, require_staging
from order_seeder.schemas.seed import SeedConfig, parse_seed_config
from order_seeder.services.seeding.cleanup import CleanupOrchestrator
from order_seeder.services.seeding.flow import SeedingFlow
from order_seeder.services.seeding.shopify_orders import ErrorPolicy
from order_seeder.services.shopify_gateway import create_shopify_gateway
from order_seeder.services.wms_cleanup_service import WmsCleanupService
from order_seeder.services.wms_repository import DryRunWmsRepository, SqlAlchemyWmsRepository

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


def load_config_file(path: str) -> SeedConfig:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Config file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Config file is not valid JSON: {path} ({e})") from e
    return parse_seed_config(data)


# =============================================================================
# COMMANDS
# =============================================================================

async def run_seed(args: argparse.Namespace, settings: Settings) -> Dict[str, Any]:
    config = load_config_file(args.config)
    region = args.region or config.effective_region
    batch_id = str(uuid.uuid4())
    error_policy = (
        ErrorPolicy.CONTINUE_ON_ERROR if args.continue_on_error else ErrorPolicy.FAIL_FAST
    )

    logger.info(
        f"Seeding {len(config.orders)} orders, batch {batch_id}, region {region}, "
        f"dry_run={args.dry_run}"
    )

    engine = None
    if args.dry_run:
        repository = DryRunWmsRepository()
    else:
        engine, session_factory = create_engine_and_sessionmaker(settings)
        repository = SqlAlchemyWmsRepository(session_factory)

    try:
        async with create_shopify_gateway(settings, region=region, dry_run=args.dry_run) as gateway:
            flow = SeedingFlow(
                gateway,
                repository,
                error_policy=error_policy,
                source_name=settings.SEED_SOURCE_NAME,
            )
            result = await flow.run(config, batch_id, region=region, skip_wms=args.skip_wms)
    finally:
        if engine is not None:
            await engine.dispose()

    output = result.to_dict()
    output["dryRun"] = args.dry_run
    return output


async def run_cleanup(args: argparse.Namespace, settings: Settings) -> Dict[str, Any]:
    # Cleanup only reads from Shopify, so the live gateway is used even for dry runs
    engine, session_factory = create_engine_and_sessionmaker(settings)
    try:
        async with create_shopify_gateway(settings) as gateway:
            orchestrator = CleanupOrchestrator(
                gateway, WmsCleanupService(SqlAlchemyWmsRepository(session_factory))
            )
            response = await orchestrator.execute({
                "batch_id": args.batch_id,
                "collection_prep_name": args.collection_prep_name,
                "tag": args.tag,
                "dry_run": args.dry_run,
            })
    finally:
        await engine.dispose()
    return response.model_dump(by_alias=True)


# =============================================================================
# ARGUMENTS
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wms-seed",
        description="Seed test orders into staging Shopify and the WMS mirror",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s seed orders.json --dry-run
  %(prog)s seed orders.json --continue-on-error --region US
  %(prog)s cleanup --batch-id 3f2b8c1e-... --dry-run
        """,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    seed = subparsers.add_parser("seed", help="Seed orders from a JSON config file")
    seed.add_argument("config", help="Path to the seed config JSON")
    seed.add_argument("--dry-run", action="store_true", help="Simulate every write")
    seed.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Record failed orders and keep going instead of stopping at the first",
    )
    seed.add_argument("--skip-wms", action="store_true", help="Only seed Shopify")
    seed.add_argument("--region", choices=["CA", "US"], help="Override the config region")
    seed.set_defaults(handler=run_seed)

    cleanup = subparsers.add_parser("cleanup", help="Delete WMS data for seeded orders")
    selector = cleanup.add_mutually_exclusive_group(required=True)
    selector.add_argument("--batch-id", help="Batch id printed by the seed command")
    selector.add_argument("--collection-prep-name", help="Collection prep name used when seeding")
    selector.add_argument("--tag", help="Raw Shopify order tag")
    cleanup.add_argument("--dry-run", action="store_true", help="Only report what would be deleted")
    cleanup.set_defaults(handler=run_cleanup)

    for sub in (seed, cleanup):
        sub.add_argument(
            "--i-know-this-is-staging",
            action="store_true",
            help="Skip the staging environment check",
        )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    try:
        settings = load_settings()
        logging.getLogger().setLevel(settings.LOG_LEVEL.upper())
        logger.info(f"Environment: {describe_environment(settings)}")
        require_staging(settings, override=args.i_know_this_is_staging)
        result = asyncio.run(args.handler(args, settings))
    except SeederBaseError as e:
        logger.error(f"{e.code}: {e.message}")
        print(json.dumps({"error": e.to_dict()}, indent=2, default=str), file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
