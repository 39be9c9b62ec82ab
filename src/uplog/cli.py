"""Command-line entry point.

::

    uplog [--config PATH] [--init-conf] [--log-level LEVEL] [FILE]

``--init-conf`` writes a default configuration file and exits.  Otherwise
the configuration is loaded, written back (so keys added in newer versions
appear in the file), and FILE is uploaded.  The resulting URL is printed on
stdout; diagnostics go to stderr.
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from uplog import __version__
from uplog.config import UplogConfig, default_config_path, load_config, write_config
from uplog.errors import ConfigError, UplogError
from uplog.observability import get_logger
from uplog.pipeline import Pipeline
from uplog.utils.redact import redact

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="uplog",
        description=(
            "Upload a file to object storage, re-encoding images as WebP, "
            "and print its public URL."
        ),
    )
    parser.add_argument("file", nargs="?", help="the file to upload")
    parser.add_argument(
        "--config",
        default=str(default_config_path()),
        help="the config file to use (default: %(default)s)",
    )
    parser.add_argument(
        "--init-conf",
        action="store_true",
        help="write a default config file and exit",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="diagnostic log level on stderr (default: %(default)s)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    log = get_logger("uplog.cli", level=args.log_level)

    if args.init_conf:
        try:
            write_config(args.config, UplogConfig())
        except ConfigError as exc:
            print(f"error: {exc.message}", file=sys.stderr)
            return EXIT_FAILURE
        print(f"wrote default config to {args.config}")
        return EXIT_OK

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return EXIT_FAILURE

    log.debug(
        "config loaded",
        extra={"extra_fields": {"path": args.config, "config": redact(config.to_dict())}},
    )

    try:
        write_config(args.config, config)
    except ConfigError as exc:
        print(f"warning: unable to update config: {exc.message}", file=sys.stderr)

    if not args.file:
        print("error: no input file specified", file=sys.stderr)
        return EXIT_USAGE

    try:
        result = Pipeline(config).run_file(args.file)
    except UplogError as exc:
        print(f"error: {exc.code}: {exc.message}", file=sys.stderr)
        return EXIT_FAILURE

    print("uploaded file to:")
    print(result.url)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
