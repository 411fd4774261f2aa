"""
Review Desk CLI
Import, triage and export marketplace reviews from the command line
"""
import argparse
import logging
import sys
from pathlib import Path

from . import config
from .classify import ReviewClassifier
from .database import DatabaseManager
from .export import export_reviews, template_csv
from .importer import ReviewImporter, ImportResult
from .transformers import filter_reviews_df
from .utils import ImportFileError, ReviewDeskError, read_json
from .workflow import WorkflowService

logger = logging.getLogger(__name__)


def _open_db(args) -> DatabaseManager:
    db = DatabaseManager(args.db)
    db.initialize_schema()
    return db


def _print_result(title: str, result: ImportResult):
    print(f"\n✅ {title} complete!")
    if result.product_name:
        print(f"   Product: {result.product_name}")
    print(f"   Imported: {result.imported}")
    print(f"   Skipped (duplicates): {result.skipped}")
    print(f"   Rejected (missing fields): {result.rejected}")
    print(f"   Malformed rows: {result.malformed}")
    if result.failed:
        print(f"   ⚠️  Failed to store: {result.failed}")


def _filter_args(parser):
    parser.add_argument("--marketplace", nargs="+")
    parser.add_argument("--status", nargs="+", choices=config.STATUSES)
    parser.add_argument("--sentiment", nargs="+", choices=config.SENTIMENTS)
    parser.add_argument("--severity", nargs="+", choices=config.SEVERITIES)
    parser.add_argument("--search", help="Free-text search")
    parser.add_argument("--date-range", choices=["7days", "30days", "90days", "all"])


def _filtered(db: DatabaseManager, args):
    return filter_reviews_df(
        db.get_reviews_df(),
        search=args.search,
        marketplace=args.marketplace,
        sentiment=args.sentiment,
        severity=args.severity,
        status=args.status,
        date_range=args.date_range,
    )


# =========================
# Commands
# =========================
def cmd_import(args):
    """Import a CSV/JSON file"""
    with _open_db(args) as db:
        importer = ReviewImporter(db, classify=not args.no_ai, show_progress=True)
        result = importer.import_path(args.file, args.marketplace)
    _print_result("Import", result)


def cmd_fetch(args):
    """Fetch a product's reviews from a marketplace API"""
    with _open_db(args) as db:
        importer = ReviewImporter(db, classify=not args.no_ai, show_progress=True)
        result = importer.import_from_marketplace(
            args.marketplace,
            args.product,
            provider=args.provider,
            full_sync=args.full_sync,
        )
    _print_result("Marketplace import", result)


def cmd_import_mailbox(args):
    """Import exported inbox messages (JSON array or {"messages": [...]})"""
    payload = read_json(args.file)
    messages = payload.get("messages") if isinstance(payload, dict) else payload
    if not isinstance(messages, list):
        raise ImportFileError(f"{args.file} must hold a JSON array of messages")
    with _open_db(args) as db:
        importer = ReviewImporter(db, classify=not args.no_ai, show_progress=True)
        result = importer.import_mailbox(messages, use_ai_filter=args.ai_filter)
    _print_result("Mailbox import", result)


def cmd_list(args):
    with _open_db(args) as db:
        df = _filtered(db, args)
    if df is None or df.empty:
        print("No reviews found")
        return
    df = df.head(args.limit)
    for _, row in df.iterrows():
        print(
            f"{row['id']}  [{row['status']:<11}] {row['marketplace']:<8} "
            f"{row['sentiment']:<8} {row['severity']:<8} {row['title'][:50]}"
        )
    print(f"\n{len(df)} review(s)")


def cmd_set_status(args):
    with _open_db(args) as db:
        review = WorkflowService(db).transition(args.review_id, args.status)
    print(f"✅ {review.id} -> {review.status}")


def cmd_reply(args):
    with _open_db(args) as db:
        review = WorkflowService(db).draft_reply(args.review_id, ReviewClassifier())
    print(f"✅ Reply drafted for {review.id}:\n")
    print(review.ai_suggested_reply)


def cmd_export(args):
    with _open_db(args) as db:
        df = _filtered(db, args)
    path = export_reviews(df, args.output)
    print(f"✅ Exported {0 if df is None else len(df)} reviews to {path}")


def cmd_template(args):
    args.output.write_text(template_csv(), encoding="utf-8")
    print(f"✅ Template written to {args.output}")


def cmd_serve(args):
    import uvicorn

    uvicorn.run("review_desk.api:app", host=args.host, port=args.port, reload=args.reload)


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description="Review Desk - marketplace review triage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Import a CSV export for the Website channel
  review-desk import reviews.csv --marketplace Website

  # Pull reviews for an Amazon product
  review-desk fetch --marketplace Amazon --product B08N5WRWNW

  # Move a review across the board
  review-desk set-status 3f2a... in_progress

  # Export open negative reviews
  review-desk export open.csv --status open --sentiment negative
        """
    )

    parser.add_argument("--debug", action="store_true", help="Debug mode")
    parser.add_argument("--db", type=Path, default=config.DB_PATH,
                        help="DuckDB file")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # ===== IMPORT =====
    import_parser = subparsers.add_parser("import", help="Import a CSV/JSON file")
    import_parser.add_argument("file", type=Path)
    import_parser.add_argument("--marketplace", required=True,
                               choices=config.IMPORTABLE_MARKETPLACES)
    import_parser.add_argument("--no-ai", action="store_true",
                               help="Skip AI classification")
    import_parser.set_defaults(func=cmd_import)

    # ===== FETCH =====
    fetch_parser = subparsers.add_parser("fetch", help="Fetch reviews from a marketplace API")
    fetch_parser.add_argument("--marketplace", required=True, choices=["Amazon", "Walmart"])
    fetch_parser.add_argument("--product", required=True, help="Product URL, ASIN or id")
    fetch_parser.add_argument("--provider", choices=["axesso", "apify", "serpapi"])
    fetch_parser.add_argument("--full-sync", action="store_true")
    fetch_parser.add_argument("--no-ai", action="store_true")
    fetch_parser.set_defaults(func=cmd_fetch)

    # ===== IMPORT-MAILBOX =====
    mailbox_parser = subparsers.add_parser("import-mailbox", help="Import inbox messages")
    mailbox_parser.add_argument("file", type=Path, help="JSON file with messages")
    mailbox_parser.add_argument("--ai-filter", action="store_true",
                                help="Only import threads the AI flags as reviews")
    mailbox_parser.add_argument("--no-ai", action="store_true")
    mailbox_parser.set_defaults(func=cmd_import_mailbox)

    # ===== LIST =====
    list_parser = subparsers.add_parser("list", help="List reviews")
    _filter_args(list_parser)
    list_parser.add_argument("--limit", type=int, default=50)
    list_parser.set_defaults(func=cmd_list)

    # ===== SET-STATUS =====
    status_parser = subparsers.add_parser("set-status", help="Change review status")
    status_parser.add_argument("review_id")
    status_parser.add_argument("status")
    status_parser.set_defaults(func=cmd_set_status)

    # ===== REPLY =====
    reply_parser = subparsers.add_parser("reply", help="Draft an AI reply")
    reply_parser.add_argument("review_id")
    reply_parser.set_defaults(func=cmd_reply)

    # ===== EXPORT =====
    export_parser = subparsers.add_parser("export", help="Export reviews to CSV")
    export_parser.add_argument("output", type=Path, nargs="?")
    _filter_args(export_parser)
    export_parser.set_defaults(func=cmd_export)

    # ===== TEMPLATE =====
    template_parser = subparsers.add_parser("template", help="Write the import CSV template")
    template_parser.add_argument("output", type=Path, nargs="?",
                                 default=Path("review_import_template.csv"))
    template_parser.set_defaults(func=cmd_template)

    # ===== SERVE =====
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--reload", action="store_true")
    serve_parser.set_defaults(func=cmd_serve)

    args = parser.parse_args()

    config.setup_logging(debug=args.debug)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except ReviewDeskError as e:
        print(f"❌ {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
