#!/usr/bin/env python3
"""
Catalog Drafter Command Line Interface

Usage:
    catalog-drafter draft https://shop.example.com/products/led-panel --admin alice
    catalog-drafter draft --image https://cdn.example.com/photo.jpg --text "20W LED panel"
    catalog-drafter fetch https://shop.example.com/products/led-panel --render
    catalog-drafter review publish DRAFT_ID --price 1499
    catalog-drafter status
"""

import argparse
import sys

from .core.category_matcher import CategoryMatcher
from .core.content_extractor import ContentExtractor
from .core.currency_normalizer import CurrencyNormalizer, format_price
from .core.draft_assembler import DraftAssembler
from .core.draft_review import DraftReviewService
from .core.extraction_client import ExtractionClient
from .core.image_processor import ImageProcessor
from .core.image_ranker import ImageRanker
from .core.page_fetcher import PageFetcher
from .exceptions import CatalogDrafterError
from .integrations.document_store import JsonDocumentStore
from .integrations.object_store import LocalObjectStore
from .integrations.settings import SettingsRepository, UsageTracker
from .models.product import DraftRequest, DraftStatus
from .utils.config import ConfigManager
from .utils.logging_setup import setup_logging
from .utils.progress import ProgressTracker

STATUS_ICONS = {"active": "⏳", "complete": "✅", "error": "❌", "skipped": "⏭️"}


def _print_event(event):
    icon = STATUS_ICONS.get(event.status, "•")
    detail = f" - {event.detail}" if event.detail else ""
    print(f"   {icon} {event.phase}{detail}")


def _open_renderer(config, enabled):
    if not enabled:
        return None

    from .integrations.browser import BrowserRenderer

    return BrowserRenderer(config)


def draft_command(args, config):
    """Run the extraction pipeline and store a draft"""
    print(f"🚀 Creating product draft for {args.url or 'uploaded content'}")

    store = JsonDocumentStore(config.get("storage.data_dir", "./data"))
    renderer = _open_renderer(config, args.render)

    try:
        image_processor = None
        if args.copy_images:
            image_processor = ImageProcessor(
                LocalObjectStore(config.get("storage.image_dir", "./data/images")), config
            )

        assembler = DraftAssembler(
            config,
            store,
            ExtractionClient(config, renderer=renderer),
            category_matcher=CategoryMatcher(store),
            currency_normalizer=CurrencyNormalizer.from_config(config),
            image_processor=image_processor,
            settings_repo=SettingsRepository(store, config),
            usage_tracker=UsageTracker(store),
        )

        request = DraftRequest(
            admin_id=args.admin,
            url=args.url,
            image_urls=args.image or [],
            text=args.text or "",
            instructions=args.instruction or [],
        )
        draft = assembler.assemble(request, progress=ProgressTracker(_print_event))

    except CatalogDrafterError as e:
        print(f"\n❌ {e.user_message}")
        sys.exit(1)
    finally:
        if renderer is not None:
            renderer.close()

    product = draft.product
    suggestion = draft.suggested_category
    meta = draft.ai_metadata

    print(f"\n✅ Draft created: {draft.id}")
    print(f"   📦 Title: {product.name}")
    if product.sku:
        print(f"   🔖 SKU: {product.sku}")
    print(f"   🖼️  Images: {len(product.images)}")
    print(f"   🏷️  Tags: {', '.join(product.tags) or '-'}")
    action = "create new" if suggestion.should_create else "use existing"
    print(f"   📂 Category: {suggestion.suggested_name} ({action}, {suggestion.confidence:.0%})")
    print(f"   🎖️  Quality score: {meta.quality_score}/100")
    print(f"   🤖 Model: {meta.model} ({meta.tokens_used} tokens, ${meta.cost:.4f})")

    if meta.source_price:
        print(
            f"   💰 Source price: {meta.source_price.original_price} {meta.source_price.original_currency}"
            f" ≈ {format_price(meta.source_price.target_price, meta.source_price.target_currency)}"
            " (reference only)"
        )
    print("   ⚠️  Price not set - confirm it during review before publishing")

    if meta.warnings:
        print("\n⚠️  Warnings:")
        for warning in meta.warnings:
            print(f"   • {warning}")


def fetch_command(args, config):
    """Fetch and analyze a product page without calling the model"""
    print(f"🌐 Fetching {args.url}")

    fetcher = PageFetcher(config)
    ranker = ImageRanker()
    renderer = _open_renderer(config, args.render)

    try:
        page = fetcher.fetch(args.url)
        document = renderer.render(page.final_url) if renderer else None
        processed = ContentExtractor(ranker=ranker).process(page.html, page.final_url, document)
    except CatalogDrafterError as e:
        for attempt in fetcher.attempts:
            print(f"   ❌ {attempt.strategy}: {attempt.error} ({attempt.elapsed:.1f}s)")
        print(f"\n❌ {e.user_message}")
        sys.exit(1)
    finally:
        if renderer is not None:
            renderer.close()

    print(f"\n✅ Fetched via {page.strategy} ({len(page.html) / 1024:.1f} KB)")
    print(f"   📝 Title: {processed.metadata.title or '-'}")
    print(f"   💰 Price: {processed.metadata.price or '-'} {processed.metadata.currency or ''}")
    print(f"   🏭 Brand: {processed.metadata.brand or '-'}")
    print(f"   📄 Cleaned content: {len(processed.cleaned_html)} chars")
    print(f"   🧩 Structured data: {'found' if processed.structured_data else 'none'}")

    print(f"\n🖼️  Candidate images ({len(processed.product_images)}):")
    for image in processed.product_images[: args.limit]:
        print(f"   • [{image.type.value}/{image.quality.value}] {image.url}")

    if document is not None:
        print("\n🔎 Ranked images (rendered page):")
        for ranked in ranker.rank(document)[: args.limit]:
            print(f"   • {ranked.score:>3} {ranked.type.value:<12} {ranked.url}")
            for reason in ranked.reasoning:
                print(f"       ↳ {reason}")


def categories_command(args, config):
    """List stored categories"""
    store = JsonDocumentStore(config.get("storage.data_dir", "./data"))
    categories = CategoryMatcher(store).load_categories()

    if not categories:
        print("❌ No categories found")
        return

    print(f"📂 Found {len(categories)} categories:")
    for category in sorted(categories, key=lambda c: c.name.lower()):
        print(f"   • {category.name} ({category.id})")


def review_command(args, config):
    """Review actions on stored drafts"""
    store = JsonDocumentStore(config.get("storage.data_dir", "./data"))
    review = DraftReviewService(store)

    try:
        if args.action == "list":
            status = DraftStatus(args.status) if args.status else None
            drafts = review.list_drafts(status)
            print(f"📋 {len(drafts)} drafts")
            for draft in drafts:
                print(f"   • {draft.id} [{draft.status.value}] {draft.product.name}")

        elif args.action == "approve-category":
            category = review.approve_category(args.draft_id, args.admin, args.name)
            print(f"✅ Category '{category.name}' attached to draft {args.draft_id}")

        elif args.action == "publish":
            product = review.publish(args.draft_id, args.admin, args.price, args.category)
            print(f"✅ Published '{product.name}' as {product.slug} ({format_price(product.price)})")

        elif args.action == "discard":
            review.discard(args.draft_id, args.admin)
            print(f"🗑️  Draft {args.draft_id} discarded")

    except CatalogDrafterError as e:
        print(f"❌ {e.user_message}")
        sys.exit(1)
    except KeyError as e:
        print(f"❌ Draft not found: {e}")
        sys.exit(1)


def status_command(args, config):
    """Show configuration summary"""
    print("⚙️  System Status")

    api_key = config.get_api_key("openai")
    print("\n📊 Configuration:")
    print(f"   • Config file: {config.config_path}")
    print(f"   • OpenAI key: {'✅ Configured' if api_key else '❌ Missing (set OPENAI_API_KEY)'}")
    print(f"   • Default model: {config.get('extraction.default_model')}")
    print(f"   • Max tokens: {config.get('extraction.max_tokens')}")
    print(f"   • Fetch strategies: {len(config.get('fetching.proxies', [])) + int(bool(config.get('fetching.direct_fallback', True)))}")
    print(f"   • Fetch timeout: {config.get('fetching.timeout_seconds')}s")
    print(f"   • Category threshold: {config.get('categories.confidence_threshold')}")
    print(
        f"   • Currency: {config.get('currency.target')} "
        f"(fallback rate {config.get('currency.fallback_rate')})"
    )
    print(f"   • Brand rewrite: {config.get('branding.brand_name') or 'off'}")
    print(f"   • Data directory: {config.get('storage.data_dir')}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalog-drafter",
        description="Catalog Drafter - Turn product pages into reviewable catalog drafts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Draft a product from its page
    catalog-drafter draft https://shop.example.com/products/led-panel

    # Draft from uploaded images and notes
    catalog-drafter draft --image https://cdn.example.com/a.jpg --text "20W LED panel, 6500K"

    # Inspect what the extractor sees on a page
    catalog-drafter fetch https://shop.example.com/products/led-panel --render

    # Publish a reviewed draft
    catalog-drafter review publish 3f2a... --price 1499
        """,
    )
    parser.add_argument("--config", help="Path to settings.yaml")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Draft command
    draft_parser = subparsers.add_parser("draft", help="Create a product draft")
    draft_parser.add_argument("url", nargs="?", help="Product page URL")
    draft_parser.add_argument("--image", action="append", help="Product image URL (repeatable)")
    draft_parser.add_argument("--text", help="Product details as free text")
    draft_parser.add_argument(
        "--instruction", action="append", help="Extra extraction instruction (repeatable)"
    )
    draft_parser.add_argument("--admin", default="admin", help="Admin id (default: admin)")
    draft_parser.add_argument(
        "--render", action="store_true", help="Rank images on a rendered page (needs Chrome)"
    )
    draft_parser.add_argument(
        "--copy-images", action="store_true", help="Copy selected images into local storage"
    )

    # Fetch command
    fetch_parser = subparsers.add_parser("fetch", help="Fetch and analyze a product page")
    fetch_parser.add_argument("url", help="Product page URL")
    fetch_parser.add_argument(
        "--render", action="store_true", help="Also rank images on a rendered page"
    )
    fetch_parser.add_argument("--limit", type=int, default=10, help="Images to show (default: 10)")

    # Categories command
    subparsers.add_parser("categories", help="List stored categories")

    # Review command
    review_parser = subparsers.add_parser("review", help="Review stored drafts")
    review_sub = review_parser.add_subparsers(dest="action", required=True)

    list_parser = review_sub.add_parser("list", help="List drafts")
    list_parser.add_argument("--status", choices=[s.value for s in DraftStatus])

    approve_parser = review_sub.add_parser("approve-category", help="Create the suggested category")
    approve_parser.add_argument("draft_id")
    approve_parser.add_argument("--name", help="Category name to use instead of the suggestion")
    approve_parser.add_argument("--admin", default="admin")

    publish_parser = review_sub.add_parser("publish", help="Publish a draft")
    publish_parser.add_argument("draft_id")
    publish_parser.add_argument("--price", type=float, required=True, help="Confirmed price")
    publish_parser.add_argument("--category", help="Category id (default: suggested category)")
    publish_parser.add_argument("--admin", default="admin")

    discard_parser = review_sub.add_parser("discard", help="Discard a draft")
    discard_parser.add_argument("draft_id")
    discard_parser.add_argument("--admin", default="admin")

    # Status command
    subparsers.add_parser("status", help="Show system status")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    config = ConfigManager(args.config)
    setup_logging(config)

    # Execute appropriate command
    if args.command == "draft":
        if not (args.url or args.image or args.text):
            parser.error("draft needs a URL, --image or --text")
        draft_command(args, config)
    elif args.command == "fetch":
        fetch_command(args, config)
    elif args.command == "categories":
        categories_command(args, config)
    elif args.command == "review":
        review_command(args, config)
    elif args.command == "status":
        status_command(args, config)


if __name__ == "__main__":
    main()
