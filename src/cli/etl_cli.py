"""
CLI for the advocacy ETL pipeline.

Usage:
    python -m src.cli.etl_cli run [--data-dir <dir>] [options]
    python -m src.cli.etl_cli clean [options]
    python -m src.cli.etl_cli init-db [options]

Settings come from an optional YAML file (--config), a .env file and the
environment; command-line flags override all of them.
"""

import argparse
import sys

from src.core.config import PipelineSettings, load_settings
from src.core.errors import PipelineError
from src.core.models import ETLStatistics
from src.etl.loader import UserLoader
from src.etl.pipeline import ETLPipeline
from src.observability.logger import configure_logging, get_logger
from src.observability.metrics import PipelineMetrics, start_metrics_server
from src.warehouse.connection import DatabaseConnectionPool
from src.warehouse.schema_mgmt import SchemaManager
from src.warehouse.user_store import PostgresUserStore

logger = get_logger(__name__)


def _load_settings(args) -> PipelineSettings:
    settings = load_settings(
        config_path=args.config,
        env_file=args.env_file,
        data_dir=getattr(args, "data_dir", None),
        batch_size=getattr(args, "batch_size", None),
        clean_database=getattr(args, "clean", None) or None,
        max_files=getattr(args, "max_files", None),
        file_pattern=getattr(args, "file_pattern", None),
        metrics_port=getattr(args, "metrics_port", None),
        log_level=args.log_level,
        db_host=args.db_host,
        db_port=args.db_port,
        db_name=args.db_name,
        db_user=args.db_user,
        db_password=args.db_password,
    )
    configure_logging(level=settings.log_level, format_type=settings.log_format)
    return settings


def format_statistics(stats: ETLStatistics) -> list[str]:
    """Render run statistics as display lines."""
    return [
        "=" * 60,
        "ETL PIPELINE RESULTS",
        "=" * 60,
        f"Duration: {(stats.duration_ms or 0) / 1000:.2f}s",
        f"Total files: {stats.total_files}",
        f"Processed files: {stats.processed_files}",
        f"Unparsable files: {stats.unparsable_files}",
        f"Successful records: {stats.successful_records}",
        f"Failed records: {stats.failed_records}",
        f"Clean records: {stats.clean_records}",
        f"Messy records: {stats.messy_records}",
        f"Validation errors: {stats.validation_errors}",
        f"Duplicates merged/replaced/discarded: "
        f"{stats.duplicates_merged}/{stats.duplicates_replaced}/{stats.duplicates_discarded}",
        f"Skipped (already loaded this run): {stats.skipped_existing}",
        f"Unique users: {stats.unique_users}",
        "=" * 60,
    ]


def run_command(args):
    """
    Run the full pipeline and print its statistics.

    Args:
        args: Command line arguments
    """
    try:
        settings = _load_settings(args)
        options = settings.pipeline_options()

        metrics = PipelineMetrics()
        if settings.metrics_port:
            start_metrics_server(metrics, settings.metrics_port)
            logger.info(f"Metrics available on port {settings.metrics_port}")

        store = PostgresUserStore.from_settings(settings)
        pipeline = ETLPipeline(store, metrics=metrics)
        stats = pipeline.run(options)
    except PipelineError as e:
        logger.error(f"Pipeline failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    for line in format_statistics(stats):
        print(line)


def clean_command(args):
    """Delete all users and program statistics."""
    try:
        settings = _load_settings(args)
        store = PostgresUserStore.from_settings(settings)
        store.open()
        try:
            UserLoader(store).clean_database()
        finally:
            store.close()
    except PipelineError as e:
        logger.error(f"Clean failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print("Database cleaned")


def init_db_command(args):
    """Create the warehouse tables."""
    try:
        settings = _load_settings(args)
        with DatabaseConnectionPool(**settings.database_kwargs()) as pool:
            SchemaManager(pool).create_tables()
    except PipelineError as e:
        logger.error(f"Database initialization failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print("Tables created")


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="Path to YAML configuration file")
    parser.add_argument("--env-file", help="Path to .env file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: LOG_LEVEL or INFO)",
    )

    # Database connection arguments
    parser.add_argument("--db-host", help="Database host (default: DB_HOST or localhost)")
    parser.add_argument("--db-port", type=int, help="Database port (default: DB_PORT or 5432)")
    parser.add_argument("--db-name", help="Database name (default: DB_NAME or advocacy)")
    parser.add_argument("--db-user", help="Database user (default: DB_USER or pipeline)")
    parser.add_argument("--db-password", help="Database password (default: DB_PASSWORD)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Advocacy participant ETL pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Load every JSON file in ./data
  python -m src.cli.etl_cli run --data-dir ./data

  # Start from an empty database, load at most 500 files
  python -m src.cli.etl_cli run --data-dir ./data --clean --max-files 500

  # Use a YAML config and expose Prometheus metrics
  python -m src.cli.etl_cli run --config config/pipeline.yaml --metrics-port 8000

  # Create tables
  python -m src.cli.etl_cli init-db
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run the ETL pipeline")
    run_parser.add_argument("--data-dir", help="Directory of JSON files (default: DATA_DIR or ./data)")
    run_parser.add_argument("--batch-size", type=int, help="Users per load batch (default: 1000)")
    run_parser.add_argument("--clean", action="store_true", help="Clean the database before loading")
    run_parser.add_argument("--max-files", type=int, help="Process at most this many files")
    run_parser.add_argument("--file-pattern", help=r"File name regex (default: \.json$)")
    run_parser.add_argument("--metrics-port", type=int, help="Expose Prometheus metrics on this port")
    _add_common_arguments(run_parser)
    run_parser.set_defaults(func=run_command)

    clean_parser = subparsers.add_parser("clean", help="Delete all loaded data")
    _add_common_arguments(clean_parser)
    clean_parser.set_defaults(func=clean_command)

    init_parser = subparsers.add_parser("init-db", help="Create database tables")
    _add_common_arguments(init_parser)
    init_parser.set_defaults(func=init_db_command)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
