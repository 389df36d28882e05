"""Command-line interface for the object storage client.

Provides argument parsing and main entry point for the ``cos`` command:

    cos buckets
    cos ls BUCKET [PREFIX] [--start-after KEY]
    cos get BUCKET KEY [-o FILE] [--range START-END]
    cos put BUCKET KEY FILE
    cos rm BUCKET KEY [KEY ...]
    cos upload BUCKET KEY FILE [--chunk-size N] [--workers N] [-j PATH] [-q]
"""

import argparse
import logging
import sys
from typing import Optional

from rich.logging import RichHandler

from cos_client.client import CosClient
from cos_client.config import ClientConfig, ConfigError, build_client, load_config
from cos_client.errors import CosError
from cos_client.paginator import ObjectListing
from cos_client.reporters import CompositeReporter, ConsoleReporter, JsonReporter, Reporter
from cos_client.retry import retry_with_backoff

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="cos",
        description="Work with buckets and objects in S3-compatible object storage",
    )

    parser.add_argument(
        "-c", "--config",
        default="cos.json",
        help="Path to configuration file (default: cos.json)",
    )

    parser.add_argument(
        "-e", "--endpoint",
        help="Service endpoint host, overrides configuration",
    )

    parser.add_argument(
        "--auth-mode",
        choices=["bearer", "hmac"],
        help="Authorization mode, overrides configuration",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Log more detail (-v for info, -vv for debug)",
    )

    parser.add_argument(
        "--retries",
        type=int,
        default=0,
        metavar="N",
        help="Retry listing and delete calls up to N times on transient errors",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("buckets", help="List buckets")

    ls_parser = subparsers.add_parser("ls", help="List objects in a bucket")
    ls_parser.add_argument("bucket")
    ls_parser.add_argument("prefix", nargs="?")
    ls_parser.add_argument("--start-after", metavar="KEY", help="List keys after KEY")

    get_parser = subparsers.add_parser("get", help="Download an object")
    get_parser.add_argument("bucket")
    get_parser.add_argument("key")
    get_parser.add_argument("-o", "--output", metavar="FILE", help="Write to FILE instead of stdout")
    get_parser.add_argument("--range", metavar="START-END", help="Download only bytes START to END")

    put_parser = subparsers.add_parser("put", help="Upload a small object in one request")
    put_parser.add_argument("bucket")
    put_parser.add_argument("key")
    put_parser.add_argument("file")

    rm_parser = subparsers.add_parser("rm", help="Delete objects")
    rm_parser.add_argument("bucket")
    rm_parser.add_argument("keys", nargs="+")

    upload_parser = subparsers.add_parser("upload", help="Upload a file with a multipart upload")
    upload_parser.add_argument("bucket")
    upload_parser.add_argument("key")
    upload_parser.add_argument("file")
    upload_parser.add_argument("--chunk-size", type=int, metavar="BYTES", help="Part size in bytes")
    upload_parser.add_argument("--workers", type=int, metavar="N", help="Concurrent part uploads")
    upload_parser.add_argument("-j", "--json-output", metavar="PATH", help="Write upload summary JSON to file")
    upload_parser.add_argument("-q", "--quiet", action="store_true", help="Suppress per-part output")

    return parser.parse_args(argv)


def configure_logging(verbosity: int) -> None:
    """Send log records to stderr through Rich."""
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=False)],
    )


def parse_range(value: str) -> tuple[int, Optional[int]]:
    """Parse a ``START-END`` or ``START-`` byte range."""
    start, sep, end = value.partition("-")
    if not sep or not start.isdigit() or (end and not end.isdigit()):
        raise ValueError(f"Invalid range '{value}', expected START-END")
    return int(start), int(end) if end else None


def create_reporters(args: argparse.Namespace) -> list[Reporter]:
    """Create upload reporters based on command-line arguments.

    Args:
        args: Parsed command-line arguments

    Returns:
        List of configured reporters
    """
    reporters = [ConsoleReporter(quiet=args.quiet)]
    if args.json_output:
        reporters.append(JsonReporter(output_path=args.json_output))
    return reporters


def _with_retries(args: argparse.Namespace, func, *func_args, **func_kwargs):
    if args.retries <= 0:
        return func(*func_args, **func_kwargs)
    return retry_with_backoff(func, max_attempts=args.retries + 1, args=func_args, kwargs=func_kwargs)


def cmd_buckets(client: CosClient, args: argparse.Namespace, config: ClientConfig) -> int:
    for bucket in _with_retries(args, client.list_buckets):
        print(f"{bucket.creation_date} {bucket.name}")
    return 0


def cmd_ls(client: CosClient, args: argparse.Namespace, config: ClientConfig) -> int:
    print(f"Listing {args.bucket}", file=sys.stderr)

    def fetch_page(continuation_token, prefix, start_after):
        return _with_retries(
            args,
            client.list_objects_page,
            args.bucket,
            continuation_token=continuation_token,
            prefix=prefix,
            start_after=start_after,
        )

    listing = ObjectListing(fetch_page, prefix=args.prefix, start_after=args.start_after)
    for obj in listing:
        print(f"{obj.last_modified} {obj.size:>10} {obj.key}")

    if listing.error is not None:
        print(f"Listing error: {listing.error}", file=sys.stderr)
        return 1
    return 0


def cmd_get(client: CosClient, args: argparse.Namespace, config: ClientConfig) -> int:
    start, end = (None, None)
    if args.range:
        try:
            start, end = parse_range(args.range)
        except ValueError as e:
            print(str(e), file=sys.stderr)
            return 2

    print(f"Downloading {args.bucket}/{args.key}", file=sys.stderr)
    if args.output:
        with open(args.output, "wb") as f:
            client.get_object(args.bucket, args.key, start=start, end=end, sink=f)
    else:
        client.get_object(args.bucket, args.key, start=start, end=end, sink=sys.stdout.buffer)
        sys.stdout.buffer.flush()
    return 0


def cmd_put(client: CosClient, args: argparse.Namespace, config: ClientConfig) -> int:
    with open(args.file, "rb") as f:
        data = f.read()
    etag = client.put_object(args.bucket, args.key, data)
    print(f"Uploaded {args.bucket}/{args.key} ({len(data)} bytes) etag {etag}", file=sys.stderr)
    return 0


def cmd_rm(client: CosClient, args: argparse.Namespace, config: ClientConfig) -> int:
    if len(args.keys) == 1:
        print(f"Deleting {args.bucket}/{args.keys[0]}", file=sys.stderr)
        _with_retries(args, client.delete_object, args.bucket, args.keys[0])
        return 0

    print(f"Deleting {len(args.keys)} objects from {args.bucket}", file=sys.stderr)
    errors = _with_retries(args, client.delete_objects, args.bucket, args.keys)
    for error in errors:
        print(f"Failed to delete {error['Key']}: {error['Code']} {error['Message']}", file=sys.stderr)
    return 1 if errors else 0


def cmd_upload(client: CosClient, args: argparse.Namespace, config: ClientConfig) -> int:
    chunk_size = args.chunk_size if args.chunk_size is not None else config.chunk_size
    max_workers = args.workers if args.workers is not None else config.max_workers
    if chunk_size <= 0:
        print(f"--chunk-size must be positive, got {chunk_size}", file=sys.stderr)
        return 2
    if max_workers < 1:
        print(f"--workers must be at least 1, got {max_workers}", file=sys.stderr)
        return 2

    reporters = create_reporters(args)
    reporter = reporters[0] if len(reporters) == 1 else CompositeReporter(reporters)

    client.upload_file(
        args.bucket,
        args.key,
        args.file,
        chunk_size=chunk_size,
        max_workers=max_workers,
        reporter=reporter,
    )
    return 0


COMMANDS = {
    "buckets": cmd_buckets,
    "ls": cmd_ls,
    "get": cmd_get,
    "put": cmd_put,
    "rm": cmd_rm,
    "upload": cmd_upload,
}


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code: 0 for success, 1 for operation errors, 2 for configuration errors
    """
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = load_config(
            args.config,
            overrides={"endpoint": args.endpoint, "auth_mode": args.auth_mode},
        )
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    logger.debug("Using endpoint %s (%s mode)", config.endpoint, config.auth_mode)
    command = COMMANDS[args.command]
    try:
        with build_client(config) as client:
            return command(client, args, config)
    except CosError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"File error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
