import argparse
import logging
import os
import sys
from pathlib import Path

from .catalog.client import DEFAULT_TIMEOUT, CatalogClient
from .core.coordinator import MigrationCoordinator
from .core.deletion import DeletionCoordinator
from .models import Context, RunResult
from .utils.report import write_report

SENSITIVE_KEYS = {"source_key", "dest_key", "key"}

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INCOMPLETE = 2


def mask_sensitive(ns: argparse.Namespace) -> dict:
    """Parsed arguments as a dict, with any API key given replaced by ``****``."""
    return {k: ("****" if k in SENSITIVE_KEYS and v else v) for k, v in vars(ns).items()}


def configure_logging(debug: bool, log_file: Path | None) -> None:
    if log_file is not None:
        handler: logging.Handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        handlers=[handler],
    )

    # ckan_migrate.catalog.client logs each action URL at DEBUG and urllib3 adds
    # the status line. http.client wire dumps are left off: they print the
    # Authorization header to stdout.
    logging.getLogger("urllib3").setLevel(logging.DEBUG if debug else logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="ckan-migrate",
                                description="Copy or delete CKAN datasets across catalog instances")
    p.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT,
                   help="HTTP timeout in seconds for each catalog call.")
    p.add_argument("--debug", action="store_true",
                   help="Log every catalog request (keys are never logged).")
    p.add_argument("--log-file", type=Path, default=None,
                   help="Write logs to this file instead of stderr.")
    sub = p.add_subparsers(dest="command", required=True)

    m = sub.add_parser("migrate", help="Copy a dataset to another catalog")
    m.add_argument("--source-url", required=True,
                   help="Source dataset page URL, e.g. https://ckan.example.org/dataset/trails-2024")
    m.add_argument("--source-key", default=os.environ.get("CKAN_SOURCE_API_KEY"),
                   help="Source API key (default: $CKAN_SOURCE_API_KEY)")
    m.add_argument("--dest-url", required=True, help="Destination catalog base URL")
    m.add_argument("--dest-key", default=os.environ.get("CKAN_DEST_API_KEY"),
                   help="Destination API key (default: $CKAN_DEST_API_KEY)")
    m.add_argument("--dest-org", required=True,
                   help="Name of the destination organization that will own the dataset")
    m.add_argument("--dest-dataset", default=None,
                   help="Existing destination dataset name or id to update (default: source name)")
    m.add_argument("--publish", action="store_true",
                   help="Make the destination dataset public once every resource has been copied.")
    m.add_argument("--report", type=Path, default=None,
                   help="Write per-resource outcomes to this CSV file.")

    d = sub.add_parser("delete", help="Delete a dataset, its resources and datastore tables")
    d.add_argument("--url", required=True, help="Dataset page URL")
    d.add_argument("--key", default=os.environ.get("CKAN_API_KEY"),
                   help="API key (default: $CKAN_API_KEY)")
    d.add_argument("--soft", action="store_true",
                   help="Use package_delete instead of purging the dataset.")
    d.add_argument("--report", type=Path, default=None,
                   help="Write per-resource outcomes to this CSV file.")
    return p


def run(args: argparse.Namespace, client: CatalogClient | None = None) -> RunResult:
    client = client or CatalogClient(timeout=args.timeout)
    if args.command == "migrate":
        source = Context.from_dataset_url(args.source_url, api_key=args.source_key)
        destination = Context(base_url=args.dest_url, api_key=args.dest_key,
                              organization_ref=args.dest_org, dataset_ref=args.dest_dataset)
        return MigrationCoordinator(client, publish=args.publish).migrate(source, destination)

    context = Context.from_dataset_url(args.url, api_key=args.key)
    return DeletionCoordinator(client, purge=not args.soft).delete(context)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.debug, args.log_file)

    log = logging.getLogger(__name__)
    log.debug("Parsed args (masked): %s", mask_sensitive(args))

    try:
        result = run(args)
        if args.report is not None:
            write_report(result, args.report)
    except KeyboardInterrupt:
        log.warning("Interrupted by user.")
        return 130
    except Exception:
        log.exception("Unhandled error during execution")
        return EXIT_ERROR

    for outcome in result.failures:
        log.warning("Failed: %s (%s)", outcome.name, outcome.error)
    log.info("%s %r: %s", result.operation.capitalize(), result.dataset_name, result.status.value)
    return EXIT_OK if result.success else EXIT_INCOMPLETE


if __name__ == "__main__":
    sys.exit(main())
