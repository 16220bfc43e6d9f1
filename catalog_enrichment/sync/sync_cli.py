"""
CLI for Catalog Enrichment

Provides command-line access to ingest, reprocessing, stop and status for a store.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from catalog_enrichment.errors import CatalogEnrichmentError
from catalog_enrichment.models import Vocabulary
from catalog_enrichment.sync.catalog_fetcher import SourceConfig
from catalog_enrichment.sync.lock_manager import LockManager
from catalog_enrichment.sync.reprocessing_selector import ReprocessOptions
from configs import get_settings


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else getattr(logging, get_settings().LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _orchestrator(db_name: str):
    # Imported lazily so `stop` and `--help` do not build AI clients
    from catalog_enrichment.sync.sync_orchestrator import SyncOrchestrator
    return SyncOrchestrator(db_name)


def _vocabulary(args) -> Optional[Vocabulary]:
    if not (args.categories or args.types or args.soft_categories):
        return None
    return Vocabulary(
        categories=args.categories or [],
        types=args.types or [],
        softCategories=args.soft_categories or [],
    )


def _print_result(result) -> None:
    stats = result.to_dict()
    print(f"\n📈 Run Statistics:")
    print(f"  Total: {stats['total']}")
    print(f"  Processed: {stats['processed']}")
    print(f"  Updated: {stats['updated']}")
    print(f"  Skipped: {stats['skipped']}")
    print(f"  Failed: {stats['failed']}")
    print(f"  Final state: {stats['state']}{' (stopped)' if stats['stopped'] else ''}")


async def ingest_command(args) -> int:
    """Handle ingest command."""
    source = None
    if args.platform:
        source = SourceConfig(
            platform=args.platform,
            shop=args.shop,
            access_token=args.token,
            base_url=args.woo_url,
            consumer_key=args.woo_key,
            consumer_secret=args.woo_secret,
            price_in_minor_units=args.price_in_minor_units,
        )

    orchestrator = _orchestrator(args.db_name)
    print(f"📥 Ingesting catalog for {args.db_name}")
    print("-" * 60)
    try:
        result = await orchestrator.ingest_catalog(
            source=source, vocabulary=_vocabulary(args), sync_mode=args.sync_mode,
        )
    finally:
        await orchestrator.close()
    _print_result(result)
    return 0


def build_reprocess_options(args) -> ReprocessOptions:
    return ReprocessOptions(
        reprocess_hard_categories=True,
        reprocess_types=True,
        reprocess_soft_categories=True,
        reprocess_variants=True,
        reprocess_descriptions=not args.skip_enrichment,
        reprocess_embeddings=not args.skip_embedding,
        translate_before_embedding=not args.skip_translation,
        reprocess_all=args.reprocess_all,
        target_category=args.target_category or None,
        missing_soft_category_only=args.missing_soft_category_only,
        limit=args.limit,
    )


async def reprocess_command(args) -> int:
    """Handle reprocess command."""
    options = build_reprocess_options(args)
    orchestrator = _orchestrator(args.db_name)

    print(f"🔄 Reprocessing products for {args.db_name}")
    if options.target_category:
        print(f"Target category: {options.target_category}")
    if options.missing_soft_category_only:
        print("Mode: missing soft categories only")
    print("-" * 60)

    try:
        result = await orchestrator.reprocess_products(
            options=options, sync_mode=args.sync_mode, vocabulary=_vocabulary(args),
        )
    finally:
        await orchestrator.close()
    _print_result(result)
    return 0


def stop_command(args) -> int:
    """Handle stop command."""
    lock_manager = LockManager(get_settings().LOCK_DIR)
    if lock_manager.request_stop(args.db_name):
        print(f"🛑 Stop requested for {args.db_name}")
    else:
        print(f"✅ {args.db_name} is already stopped")
    return 0


async def status_command(args) -> int:
    """Handle status command."""
    orchestrator = _orchestrator(args.db_name)
    try:
        status = await orchestrator.get_status()
    finally:
        await orchestrator.close()

    if not status:
        print(f"❌ No sync status found for {args.db_name}")
        return 1

    if args.json:
        print(json.dumps(status, ensure_ascii=False, indent=2))
        return 0

    print(f"📊 Sync Status for {args.db_name}")
    print("-" * 60)
    print(f"  State: {status.get('state')}")
    print(f"  Progress: {status.get('done', 0)}/{status.get('total', 0)} ({status.get('progress', 0)}%)")
    print(f"  Started: {status.get('startedAt') or 'Never'}")
    print(f"  Finished: {status.get('finishedAt') or '-'}")
    if status.get("stoppedAt"):
        print(f"  Stopped: {status['stoppedAt']}")

    logs = status.get("logs") or []
    if logs:
        print(f"\n📝 Last {min(len(logs), args.tail)} log lines:")
        for line in logs[-args.tail:]:
            print(f"  {line}")
    return 0


async def missing_embeddings_command(args) -> int:
    """Handle missing-embeddings command."""
    orchestrator = _orchestrator(args.db_name)
    try:
        products = await orchestrator.find_missing_embeddings(limit=args.limit)
        print(f"🔍 {len(products)} products without embeddings in {args.db_name}")
        for product in products[:20]:
            print(f"  - {product.get('id')}: {product.get('name')}")
        if len(products) > 20:
            print(f"  ... and {len(products) - 20} more")

        if args.generate and products:
            print("\n🚀 Generating missing embeddings...")
            result = await orchestrator.generate_missing_embeddings(limit=args.limit)
            _print_result(result)
    finally:
        await orchestrator.close()
    return 0


def _add_vocabulary_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--sync-mode", choices=["text", "image"], help="Override the store's sync mode")
    parser.add_argument("--categories", nargs="*", help="Category vocabulary (default: store config)")
    parser.add_argument("--types", nargs="*", help="Type vocabulary (default: store config)")
    parser.add_argument("--soft-categories", nargs="*", help="Soft category vocabulary (default: store config)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Catalog enrichment: ingest, reprocess and monitor product catalogs"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Ingest command
    ingest_parser = subparsers.add_parser("ingest", help="Fetch, normalize and enrich the full catalog")
    ingest_parser.add_argument("db_name", help="Store (tenant) identifier")
    ingest_parser.add_argument("--platform", choices=["shopify", "woo"],
                               help="Source platform (default: store config credentials)")
    ingest_parser.add_argument("--shop", help="Shopify shop name or domain")
    ingest_parser.add_argument("--token", help="Shopify Admin API access token")
    ingest_parser.add_argument("--woo-url", help="WooCommerce site URL")
    ingest_parser.add_argument("--woo-key", help="WooCommerce consumer key")
    ingest_parser.add_argument("--woo-secret", help="WooCommerce consumer secret")
    ingest_parser.add_argument("--price-in-minor-units", action="store_true",
                               help="Source prices are in minor units (cents)")
    _add_vocabulary_arguments(ingest_parser)

    # Reprocess command
    reprocess_parser = subparsers.add_parser("reprocess", help="Reprocess stored products")
    reprocess_parser.add_argument("db_name", help="Store (tenant) identifier")
    reprocess_parser.add_argument("--target-category", help="Only products whose category contains this label")
    reprocess_parser.add_argument("--missing-soft-category-only", action="store_true",
                                  help="Only products with a category and no softCategory field")
    reprocess_parser.add_argument("--skip-enrichment", action="store_true", help="Reuse the stored description1")
    reprocess_parser.add_argument("--skip-embedding", action="store_true", help="Do not regenerate embeddings")
    reprocess_parser.add_argument("--skip-translation", action="store_true",
                                  help="Do not translate before embedding")
    reprocess_parser.add_argument("--force", "--reprocess-all", dest="reprocess_all", action="store_true",
                                  help="Reprocess every in-stock embedded product")
    reprocess_parser.add_argument("--limit", type=int, help="Maximum number of products")
    _add_vocabulary_arguments(reprocess_parser)

    # Stop command
    stop_parser = subparsers.add_parser("stop", help="Ask a running job to stop")
    stop_parser.add_argument("db_name", help="Store (tenant) identifier")

    # Status command
    status_parser = subparsers.add_parser("status", help="Show sync status")
    status_parser.add_argument("db_name", help="Store (tenant) identifier")
    status_parser.add_argument("--tail", type=int, default=20, help="Log lines to show")
    status_parser.add_argument("--json", action="store_true", help="Print the raw status record")

    # Missing embeddings command
    missing_parser = subparsers.add_parser("missing-embeddings", help="List products without embeddings")
    missing_parser.add_argument("db_name", help="Store (tenant) identifier")
    missing_parser.add_argument("--limit", type=int, help="Maximum number of products")
    missing_parser.add_argument("--generate", action="store_true", help="Generate the missing embeddings")

    return parser


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose)

    try:
        if args.command == "stop":
            return stop_command(args)
        if args.command == "ingest":
            return asyncio.run(ingest_command(args))
        if args.command == "reprocess":
            return asyncio.run(reprocess_command(args))
        if args.command == "status":
            return asyncio.run(status_command(args))
        if args.command == "missing-embeddings":
            return asyncio.run(missing_embeddings_command(args))
    except CatalogEnrichmentError as e:
        print(f"❌ Error: {e}")
        return 1
    except KeyboardInterrupt:
        print("\n🛑 Interrupted")
        return 130

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
