import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from botocore.exceptions import ClientError
from dotenv import load_dotenv

from s3copy_api.backend import StorageBackend
from s3copy_api.errors import CopyError
from s3copy_api.log import configure_logging
from s3copy_api.orchestrator import CopyOptions, CopyOrchestrator
from s3copy_api.planner import DEFAULT_RELAY_PART_SIZE, DEFAULT_SERVER_SIDE_PART_SIZE
from s3copy_api.s3.backend import S3Backend
from s3copy_api.s3.create import S3Config
from s3copy_api.s3.types import S3Credentials
from s3copy_api.types import CommittedPart, ObjectLocator, SizeSuffix
from s3copy_api.util import locked_print


@dataclass
class Args:
    src: str
    dst: str
    part_size: SizeSuffix | None
    concurrency: int | None
    retries: int | None
    force_relay: bool
    rename: bool
    plan_only: bool
    verify: bool
    env_file: Path | None
    log_file: Path | None
    verbose: bool


def _parse_args(argv: list[str] | None = None) -> Args:
    parser = argparse.ArgumentParser(
        description="Copy a large object between S3 locations, across regions if needed."
    )
    parser.add_argument("src", help="Source object, s3://bucket/key")
    parser.add_argument(
        "dst",
        help="Destination object, s3://bucket/key. With --rename this is the new key only",
    )
    parser.add_argument("-v", "--verbose", help="Verbose output", action="store_true")
    parser.add_argument(
        "--part-size",
        help=f"Part size in SizeSuffix form, defaults to {SizeSuffix(DEFAULT_SERVER_SIDE_PART_SIZE)} in region and {SizeSuffix(DEFAULT_RELAY_PART_SIZE)} across regions",
        type=str,
        default=None,
    )
    parser.add_argument(
        "--concurrency",
        help="Max number of parts in flight, each relayed part is held in memory",
        type=int,
        default=None,
    )
    parser.add_argument("--retries", help="Retries per part", type=int, default=None)
    parser.add_argument(
        "--force-relay",
        help="Read and re-upload every part even when a server side copy is possible",
        action="store_true",
    )
    parser.add_argument(
        "--rename",
        help="Rename src to the key given as dst in the same bucket",
        action="store_true",
    )
    parser.add_argument(
        "--plan", help="Print the part plan and exit", action="store_true"
    )
    parser.add_argument(
        "--no-verify",
        help="Skip the size check of the destination after the copy",
        action="store_true",
    )
    parser.add_argument(
        "--env", help="Path to a .env file with credentials", type=Path, default=None
    )
    parser.add_argument("--log-file", help="Also log to this file", type=Path)

    args = parser.parse_args(argv)
    return Args(
        src=args.src,
        dst=args.dst,
        part_size=SizeSuffix(args.part_size) if args.part_size else None,
        concurrency=args.concurrency,
        retries=args.retries,
        force_relay=args.force_relay,
        rename=args.rename,
        plan_only=args.plan,
        verify=not args.no_verify,
        env_file=args.env,
        log_file=args.log_file,
        verbose=args.verbose,
    )


def _locate(backend: StorageBackend, url: str) -> ObjectLocator:
    # parse first with a placeholder domain to validate the url
    parsed = ObjectLocator.from_s3_url(url, domain="")
    return backend.locate(parsed.bucket, parsed.key)


def _make_options(args: Args) -> CopyOptions:
    options = CopyOptions.from_env()
    if args.part_size is not None:
        options.part_size = args.part_size.as_int()
    if args.concurrency is not None:
        options.concurrency = args.concurrency
    if args.retries is not None:
        options.retries = args.retries
    options.force_relay = args.force_relay
    options.verify = args.verify
    if args.verbose:

        def on_part_committed(part: CommittedPart) -> None:
            locked_print(f"Finished part {part.part_number} ({part.etag})")

        options.on_part_committed = on_part_committed
    return options


def _print_plan(
    orchestrator: CopyOrchestrator,
    source: ObjectLocator,
    destination: ObjectLocator,
    options: CopyOptions,
) -> int:
    try:
        kind, copy_plan = orchestrator.make_plan(source, destination, options)
    except CopyError as e:
        locked_print(f"Error: {e}")
        return 1
    locked_print(f"strategy: {kind.value}")
    if copy_plan is None:
        locked_print(
            f"{source.s3_url()} ({source.domain}) -> {destination.s3_url()} ({destination.domain}) in a single copy request"
        )
    else:
        locked_print(copy_plan.describe())
    return 0


def run(args: Args, backend: StorageBackend | None = None) -> int:
    if backend is None:
        credentials = S3Credentials.from_env()
        backend = S3Backend(
            credentials,
            S3Config(
                max_pool_connections=args.concurrency,
                verbose=args.verbose,
            ),
        )
    orchestrator = CopyOrchestrator(backend)
    options = _make_options(args)
    try:
        source = _locate(backend, args.src)
        if args.rename:
            destination = source.with_key(args.dst)
        else:
            destination = _locate(backend, args.dst)
    except (ValueError, ClientError) as e:
        locked_print(f"Error: {e}")
        return 1

    if args.plan_only:
        return _print_plan(orchestrator, source, destination, options)

    err: Exception | None
    if args.rename:
        err = orchestrator.rename(source, args.dst, options)
    else:
        err = orchestrator.copy(source, destination, options)
    if err is not None:
        locked_print(f"Error: {err}")
        return 1
    result = orchestrator.last_result
    if result is not None:
        locked_print(
            f"Copied {source.s3_url()} -> {destination.s3_url()} using {result.strategy.value} copy with {len(result.parts)} parts"
        )
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = _parse_args(argv)
    if args.env_file is not None:
        load_dotenv(args.env_file)
    else:
        load_dotenv()
    configure_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_file=args.log_file,
    )
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
