"""Command-line interface for gitmonitor.

Usage:
    gitmonitor scan
    gitmonitor scan --light --json
    gitmonitor roots add ~/code
    gitmonitor cache stats
    gitmonitor serve --port 9876
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .core.config import ConfigStore
from .core.models import NodeKind, TreeNode
from .core.orchestrator import ScanOrchestrator
from .core.process import check_dependencies

_KIND_MARKERS = {
    NodeKind.ROOT: "[root]",
    NodeKind.WORKSPACE: "[workspace]",
    NodeKind.REPOSITORY: "[repo]",
    NodeKind.PLAIN_FOLDER: "[folder]",
}


def format_tree(roots: list[TreeNode]) -> str:
    """Indented outline of the tree, one node per line."""
    lines: list[str] = []

    def visit(node: TreeNode, depth: int) -> None:
        line = f"{'  ' * depth}{_KIND_MARKERS[node.kind]} {node.name}"
        if node.is_repository:
            line += f"  ({node.status_description})"
        lines.append(line)
        for child in node.children:
            visit(child, depth + 1)

    for root in roots:
        visit(root, 0)
    return "\n".join(lines)


async def _scan(orchestrator: ScanOrchestrator, light: bool) -> None:
    if light:
        await orchestrator.startup()
        await orchestrator.wait_background()
    else:
        await orchestrator.full_scan()


def cmd_scan(args: argparse.Namespace, store: ConfigStore) -> int:
    if not store.config.root_paths:
        print("No roots configured. Add one with: gitmonitor roots add PATH", file=sys.stderr)
        return 1
    orchestrator = ScanOrchestrator.from_config_store(store, cache_path=args.cache)
    asyncio.run(_scan(orchestrator, args.light))
    roots = orchestrator.roots
    if args.json:
        print(json.dumps([root.to_dict() for root in roots], indent=2))
    else:
        print(format_tree(roots))
        stats = orchestrator.change_stats()
        print(
            f"\n{stats.total_repos} repositories, {stats.changed_repos} changed "
            f"since last refresh ({stats.percent_changed})"
        )
    return 0


def cmd_roots(args: argparse.Namespace, store: ConfigStore) -> int:
    if args.action == "list":
        for root in store.config.root_paths:
            print(root)
        return 0
    if args.path is None:
        print(f"roots {args.action} needs a PATH", file=sys.stderr)
        return 2
    if args.action == "add":
        if not args.path.expanduser().is_dir():
            print(f"Not a directory: {args.path}", file=sys.stderr)
            return 1
        changed = store.add_root(args.path)
        print(f"Added {args.path}" if changed else f"{args.path} is already monitored")
        return 0
    if not store.remove_root(args.path):
        print(f"Not a monitored root: {args.path}", file=sys.stderr)
        return 1
    print(f"Removed {args.path}")
    return 0


def cmd_ignore(args: argparse.Namespace, store: ConfigStore) -> int:
    if args.undo:
        changed = store.unignore_path(args.path)
        print(f"No longer ignoring {args.path}" if changed else f"{args.path} was not ignored")
    else:
        changed = store.ignore_path(args.path)
        print(f"Ignoring {args.path}" if changed else f"{args.path} is already ignored")
    return 0


def cmd_cache(args: argparse.Namespace, store: ConfigStore) -> int:
    orchestrator = ScanOrchestrator.from_config_store(store, cache_path=args.cache)
    cache_store = orchestrator.cache_store
    if args.action == "clear":
        print("Cache cleared" if cache_store.clear() else "No cache to clear")
        return 0
    stats = cache_store.stats()
    print(f"Path:          {cache_store.cache_path}")
    if stats is None:
        print("Status:        missing")
        return 0
    print(f"Size:          {stats.formatted_size}")
    print(f"Last modified: {stats.last_modified.isoformat(timespec='seconds')}")
    return 0


def cmd_doctor(args: argparse.Namespace, store: ConfigStore) -> int:
    print(f"Config: {store.config_path}")
    print(f"Roots:  {len(store.config.root_paths)}")
    missing = check_dependencies()
    if not missing:
        print("All external tools found.")
        return 0
    for status in missing:
        print(f"\n{status.command}: {status.message}")
        print(f"  {status.install_instruction}")
    return 1 if any(status.command == "git" for status in missing) else 0


def cmd_serve(args: argparse.Namespace, store: ConfigStore) -> int:
    from .sidecar.server import run

    run(host=args.host, port=args.port, config_path=store.config_path)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gitmonitor",
        description="Monitor the git working trees under a set of folders",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="More logging (-v info, -vv debug)")
    parser.add_argument("--config", type=Path, default=None,
                        help="Path to config.json (default: under GITMONITOR_HOME)")
    parser.add_argument("--cache", type=Path, default=None,
                        help="Path to the cache file (default: under GITMONITOR_HOME)")
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Scan all roots and print the tree")
    scan.add_argument("--light", action="store_true",
                      help="Start from the cache and refresh only changed repositories")
    scan.add_argument("--json", action="store_true", help="Print the tree as JSON")
    scan.set_defaults(handler=cmd_scan)

    roots = sub.add_parser("roots", help="List, add or remove monitored roots")
    roots.add_argument("action", choices=["list", "add", "remove"])
    roots.add_argument("path", type=Path, nargs="?")
    roots.set_defaults(handler=cmd_roots)

    ignore = sub.add_parser("ignore", help="Exclude a folder from discovery")
    ignore.add_argument("path", type=Path)
    ignore.add_argument("--undo", action="store_true", help="Stop ignoring the folder")
    ignore.set_defaults(handler=cmd_ignore)

    cache = sub.add_parser("cache", help="Inspect or clear the scan cache")
    cache.add_argument("action", choices=["stats", "clear"])
    cache.set_defaults(handler=cmd_cache)

    doctor = sub.add_parser("doctor", help="Check for git and gh")
    doctor.set_defaults(handler=cmd_doctor)

    serve = sub.add_parser("serve", help="Run the HTTP sidecar")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=9876)
    serve.set_defaults(handler=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    store = ConfigStore(args.config)
    return args.handler(args, store)


if __name__ == "__main__":
    sys.exit(main())
