#!/usr/bin/env python3
"""
Database CLI for Review Desk
Commands for initializing, inspecting and exporting the DuckDB review store
"""
import argparse
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

import duckdb

from review_desk import config
from review_desk.database import DatabaseManager, AnalyticsQueries


def _db_path(args) -> Path:
    return Path(args.db) if args.db else config.DB_PATH


def cmd_init(args):
    """Initialize database schema"""
    db_path = _db_path(args)

    print(f"🗄️  Initializing database: {db_path}")

    with DatabaseManager(db_path) as db:
        db.initialize_schema()
        stats = db.get_table_stats()

    print("✅ Database initialized!")
    print("   Tables created: reviews, products, processing_runs")
    print(f"   Current stats: {stats}")
    return 0


def cmd_stats(args):
    """Show database statistics"""
    db_path = _db_path(args)

    if not db_path.exists():
        print(f"❌ Database not found: {db_path}")
        print("   Run 'db_cli.py init' first")
        return 1

    with DatabaseManager(db_path, read_only=True) as db:
        analytics = AnalyticsQueries(db)

        print("📊 Table Statistics:")
        for table, count in db.get_table_stats().items():
            print(f"   {table}: {count:,}")

        overview = analytics.get_overview_stats()
        print("\n📈 Overview:")
        print(f"   Total Reviews: {overview['total_reviews']:,}")
        print(f"   Marketplaces: {overview['total_marketplaces']}")
        print(f"   Products: {overview['total_products']}")
        if overview["avg_rating"] is not None:
            print(f"   Average Rating: {overview['avg_rating']:.2f}")
        print(f"   Urgent (high/critical): {overview['urgent_count']}")

        print("\n🗂️  Board:")
        for status, count in overview["status_counts"].items():
            print(f"   {status}: {count:,}")

        print("\n😊 Sentiment Distribution:")
        for s in overview.get("sentiment_distribution", []):
            print(f"   {s['value']}: {s['count']:,} ({s['percentage']}%)")

        last_run = db.get_last_run()
        if last_run:
            print(f"\n🕒 Last import: {last_run.run_type} ({last_run.status}) at {last_run.started_at}")

    return 0


def cmd_query(args):
    """Run analytical queries"""
    db_path = _db_path(args)

    if not db_path.exists():
        print(f"❌ Database not found: {db_path}")
        return 1

    with DatabaseManager(db_path, read_only=True) as db:
        analytics = AnalyticsQueries(db)

        if args.query == "marketplaces":
            df = analytics.get_marketplace_stats()
            print("\n🛒 Marketplace Statistics:")
        elif args.query == "products":
            df = analytics.get_product_stats(args.filter)
            print("\n📦 Product Statistics:")
        elif args.query == "trends":
            df = analytics.get_temporal_trends(
                granularity=args.granularity or "month",
                marketplace=args.filter
            )
            print("\n📈 Temporal Trends:")
        elif args.query == "urgent":
            df = analytics.get_urgent_open_reviews(limit=args.top or 20)
            print("\n🚨 Urgent Open Reviews:")
        else:
            df = analytics.get_distribution(args.query, marketplace=args.filter)
            print(f"\n📊 {args.query.title()} Distribution:")

        print(df.to_string(index=False))

    return 0


def cmd_export(args):
    """Export reviews to CSV"""
    db_path = _db_path(args)
    output_path = Path(args.output)

    if not db_path.exists():
        print(f"❌ Database not found: {db_path}")
        return 1

    with DatabaseManager(db_path, read_only=True) as db:
        df = db.get_reviews_df(marketplace=args.marketplace, status=args.status)
        count = db.export_to_csv(output_path, df)

    print(f"✅ Exported {count:,} rows to {output_path}")
    return 0


def cmd_sql(args):
    """Run raw SQL query"""
    db_path = _db_path(args)

    if not db_path.exists():
        print(f"❌ Database not found: {db_path}")
        return 1

    with DatabaseManager(db_path, read_only=True) as db:
        try:
            result = db.query_df(args.sql)
        except duckdb.Error as e:
            print(f"❌ SQL Error: {e}")
            return 1
        print(result.to_string(index=False))

    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Review Desk Database CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Initialize database
  python db_cli.py init

  # Show statistics
  python db_cli.py stats

  # Run queries
  python db_cli.py query marketplaces
  python db_cli.py query sentiment --filter Amazon
  python db_cli.py query trends --granularity week
  python db_cli.py query urgent --top 10

  # Export data
  python db_cli.py export --output reviews.csv --status open

  # Raw SQL
  python db_cli.py sql "SELECT marketplace, COUNT(*) FROM reviews GROUP BY marketplace"
        """
    )

    parser.add_argument("--db", help="Database path (default: data/review_desk.duckdb)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("init", help="Initialize database schema")
    subparsers.add_parser("stats", help="Show database statistics")

    query_parser = subparsers.add_parser("query", help="Run analytical queries")
    query_parser.add_argument(
        "query",
        choices=["marketplaces", "products", "trends", "urgent",
                 "sentiment", "severity", "category", "status"]
    )
    query_parser.add_argument("--filter", help="Marketplace filter")
    query_parser.add_argument("--top", type=int, help="Number of rows")
    query_parser.add_argument("--granularity", choices=["day", "week", "month", "quarter", "year"])

    export_parser = subparsers.add_parser("export", help="Export reviews to CSV")
    export_parser.add_argument("--output", required=True, help="Output CSV path")
    export_parser.add_argument("--marketplace", help="Only this marketplace")
    export_parser.add_argument("--status", choices=config.STATUSES)

    sql_parser = subparsers.add_parser("sql", help="Run raw SQL query")
    sql_parser.add_argument("sql", help="SQL query to execute")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s"
    )

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "init": cmd_init,
        "stats": cmd_stats,
        "query": cmd_query,
        "export": cmd_export,
        "sql": cmd_sql,
    }

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main() or 0)
