#!/usr/bin/env python

import argparse
import asyncio
import logging
import sys
from typing import List, Optional, Sequence

from apigroups.config import SortConfigLoader
from apigroups.discovery import discover_group_versions, load_discovery_file
from apigroups.model.group_version import GroupVersion
from apigroups.sorting import group_by_priority, sort_group_versions
from apigroups.tools.logs import configure_logging
from apigroups.tools.terminal import TerminalPrinter

logger = logging.getLogger("main")


def collect_group_versions(args: argparse.Namespace) -> List[GroupVersion]:
    group_versions = [GroupVersion.parse(value) for value in args.api_versions]

    for filepath in args.files:
        found = load_discovery_file(filepath)
        logger.info("Read %s group versions from %s", len(found), filepath)
        group_versions.extend(found)

    if args.server:
        found = asyncio.run(discover_group_versions(args.server, token=args.token))
        logger.info("Discovered %s group versions on %s", len(found), args.server)
        group_versions.extend(found)

    return group_versions


def select_patterns(args: argparse.Namespace) -> List[str]:
    # patterns on the command line take precedence over any config file
    if args.patterns:
        return list(args.patterns)

    loader = SortConfigLoader()
    config = loader.load(args.config)
    return config.patterns


def display(
    printer: TerminalPrinter,
    group_versions: Sequence[GroupVersion],
    patterns: Sequence[str],
    group_headers: bool,
) -> None:
    if not group_headers:
        for gv in sort_group_versions(group_versions, patterns):
            printer.write_line(gv.api_version)
        return

    for bucket, label, items in group_by_priority(group_versions, patterns):
        # the core pattern is the empty string, which makes a poor header
        header = label if label else "core"
        printer.headerln(f"# [{bucket}] {header}")

        for gv in items:
            printer.write_line(gv.api_version)


def main(args: argparse.Namespace) -> int:
    level = logging.DEBUG if args.verbose else logging.WARNING
    configure_logging(filename=args.log_file, level=level)

    printer = TerminalPrinter(use_color=sys.stdout.isatty())

    if not (args.api_versions or args.files or args.server):
        printer.errorln("No api versions given, use arguments, --file or --server")
        return 1

    patterns = select_patterns(args)
    logger.debug("Sorting with patterns: %r", patterns)

    group_versions = collect_group_versions(args)
    display(printer, group_versions, patterns, args.group_headers)

    return 0


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Print api group versions in hierarchical display order"
    )
    parser.add_argument(
        "api_versions",
        nargs="*",
        help="Api versions to sort, like apps/v1 or v1 for the core group",
    )
    parser.add_argument(
        "--file",
        dest="files",
        action="append",
        default=[],
        help="Discovery document (APIGroupList, APIVersions) in json or yaml",
    )
    parser.add_argument(
        "--server",
        dest="server",
        action="store",
        help="Kube api server to run discovery against",
    )
    parser.add_argument(
        "--token",
        dest="token",
        action="store",
        help="Bearer token for the api server",
    )
    parser.add_argument(
        "--pattern",
        dest="patterns",
        action="append",
        default=[],
        help="Priority pattern, repeat to add more - the first sorts first",
    )
    parser.add_argument(
        "--config",
        dest="config",
        action="store",
        help="Sort config file with kind: GroupSort",
    )
    parser.add_argument(
        "--group-headers",
        dest="group_headers",
        action="store_true",
        help="Print a header before each priority bucket",
    )
    parser.add_argument(
        "--log-file",
        dest="log_file",
        action="store",
        help="Write logs to this file instead of stderr",
    )
    parser.add_argument(
        "--verbose",
        dest="verbose",
        action="store_true",
        help="Log at debug level",
    )
    return parser


def run(argv: Optional[Sequence[str]] = None) -> None:
    parser = create_parser()
    args = parser.parse_args(argv)

    sys.exit(main(args))


if __name__ == "__main__":
    run()
