#!/usr/bin/env python3

# Copyright 2025-present The Arbor Authors.
# Licensed under the Apache License, Version 2.0.
# See http://www.apache.org/licenses/LICENSE-2.0 for details.

import argparse
import json
import sys
from typing import Any, List, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from arbor import __version__
from arbor.configuration.tree_config import load_tree_config
from arbor.tree.service import TreeService
from arbor.utils.exceptions import ArborException, Outcome
from arbor.utils.loggings import configure_logging, get_logger

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CODES = {
    Outcome.NOT_FOUND: 2,
    Outcome.BAD_REQUEST: 3,
    Outcome.INTEGRITY: 4,
    Outcome.ERROR: EXIT_ERROR,
}


def _add_global_options(parser: argparse.ArgumentParser, suppress_defaults: bool = False) -> None:
    # Subcommand copies leave values given before the subcommand in place
    parser.add_argument(
        "--debug",
        action="store_true",
        default=argparse.SUPPRESS if suppress_defaults else False,
        help="Enable debug level logging",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=argparse.SUPPRESS if suppress_defaults else None,
        help="Path to configuration file (default: conf/arbor.yml)",
    )


def create_parser() -> argparse.ArgumentParser:
    global_parser = argparse.ArgumentParser(add_help=False)
    _add_global_options(global_parser)
    subcommand_options = argparse.ArgumentParser(add_help=False)
    _add_global_options(subcommand_options, suppress_defaults=True)

    parser = argparse.ArgumentParser(
        description="Arbor: a node forest kept in one relational table",
        parents=[global_parser],
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--version", action="version", version=f"Arbor {__version__}")

    subparsers = parser.add_subparsers(dest="action", help="Action to perform")

    init_parser = subparsers.add_parser("init", help="Create a root node", parents=[subcommand_options])
    init_parser.add_argument("name", help="Name of the root node")

    add_parser = subparsers.add_parser("add", help="Create a child node", parents=[subcommand_options])
    add_parser.add_argument("parent_id", type=int, help="Id of the parent node")
    add_parser.add_argument("name", help="Name of the new node")

    rm_parser = subparsers.add_parser("rm", help="Delete a child node and its subtree", parents=[subcommand_options])
    rm_parser.add_argument("parent_id", type=int, help="Id of the parent node")
    rm_parser.add_argument("child_id", type=int, help="Id of the child to delete")

    mv_parser = subparsers.add_parser("mv", help="Move a node under a new parent", parents=[subcommand_options])
    mv_parser.add_argument("node_id", type=int, help="Id of the node to move")
    target = mv_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--parent", type=int, dest="new_parent_id", help="Id of the new parent")
    target.add_argument("--root", action="store_true", help="Detach the node into a new root")

    desc_parser = subparsers.add_parser("descendants", help="List descendants of a node", parents=[subcommand_options])
    desc_parser.add_argument("node_id", type=int, help="Id of the node to expand")
    desc_parser.add_argument("--json", action="store_true", help="Print JSON instead of a table")

    ls_parser = subparsers.add_parser("ls", help="List all nodes", parents=[subcommand_options])
    ls_parser.add_argument("--json", action="store_true", help="Print JSON instead of a table")

    return parser


class ArborCLI:
    """Dispatches parsed arguments to the tree service and renders results."""

    def __init__(self, service: TreeService, console: Optional[Console] = None):
        self.service = service
        self.console = console or Console()

    def run(self, args: argparse.Namespace) -> int:
        handler = getattr(self, f"cmd_{args.action}")
        handler(args)
        return EXIT_OK

    def cmd_init(self, args: argparse.Namespace) -> None:
        node = self.service.create_root(args.name)
        self.console.print(f"Created root node [bold]{node.id}[/bold] ({escape(node.name)})")

    def cmd_add(self, args: argparse.Namespace) -> None:
        node = self.service.create_child(args.parent_id, args.name)
        self.console.print(f"Created node [bold]{node.id}[/bold] ({escape(node.name)}) under {args.parent_id}")

    def cmd_rm(self, args: argparse.Namespace) -> None:
        deleted = self.service.delete_child(args.parent_id, args.child_id)
        self.console.print(f"Deleted {deleted} node(s)")

    def cmd_mv(self, args: argparse.Namespace) -> None:
        new_parent_id = None if args.root else args.new_parent_id
        node = self.service.move_node(args.node_id, new_parent_id)
        where = "root" if node.parent_id is None else f"node {node.parent_id}"
        self.console.print(f"Moved node [bold]{node.id}[/bold] under {where}")

    def cmd_descendants(self, args: argparse.Namespace) -> None:
        rows = [d.model_dump() for d in self.service.get_descendants(args.node_id)]
        self._emit(rows, ("id", "name", "depth"), f"Descendants of {args.node_id}", args.json)

    def cmd_ls(self, args: argparse.Namespace) -> None:
        rows = [n.to_dict() for n in self.service.list_nodes()]
        self._emit(rows, ("id", "name", "parent_id", "created_at", "updated_at"), "Nodes", args.json)

    def _emit(self, rows: List[dict], columns: Sequence[str], title: str, as_json: bool) -> None:
        if as_json:
            # Plain print, no rich markup
            print(json.dumps(rows, ensure_ascii=False))
            return
        table = Table(title=title)
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*[_cell(row.get(column)) for column in columns])
        self.console.print(table)


def _cell(value: Any) -> str:
    return "" if value is None else escape(str(value))


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.action:
        parser.print_help()
        return EXIT_ERROR

    err_console = Console(stderr=True)
    try:
        config = load_tree_config(args.config)
        configure_logging(args.debug, log_dir=config.logging.log_dir, level=config.logging.level)
        service = TreeService.from_config(config)
        return ArborCLI(service).run(args)
    except ArborException as e:
        err_console.print(f"[red]Error:[/red] {escape(e.message)}")
        logger.debug(f"{args.action} failed: {e}")
        return EXIT_CODES.get(e.outcome, EXIT_ERROR)
    except Exception as e:
        logger.exception(f"Unexpected failure running {args.action}")
        err_console.print(f"[red]Unexpected error:[/red] {escape(str(e))}")
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
