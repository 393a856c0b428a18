"""
Shadow API CLI: unified entrypoint.

Usage examples:
    shadowapi proxy --port 8080 --scope-only
    shadowapi list
    shadowapi export > endpoints.txt
    shadowapi clear
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from shadowapi.config import ShadowConfig, get_config, read_lines, set_config, setup_logging
from shadowapi.errors import ShadowError
from shadowapi.session import ShadowSession
from shadowapi.views.console import ConsoleObserver
from shadowapi.views.tree import render_tree

logger = logging.getLogger(__name__)


def run_proxy(args, config: ShadowConfig) -> int:
    """Run the intercepting proxy until interrupted."""
    from shadowapi.ghost.proxy import ShadowInterceptor

    with ShadowSession(config) as session:
        console = ConsoleObserver(session.events)
        console.attach()
        interceptor = ShadowInterceptor(
            session.engine,
            host=config.proxy.listen_host,
            port=config.proxy.listen_port,
        )

        async def _main():
            await interceptor.start()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.add_signal_handler(sig, interceptor.stop)
                except NotImplementedError:
                    pass  # Windows
            try:
                await interceptor.wait()
            except asyncio.CancelledError:
                pass

        try:
            asyncio.run(_main())
        finally:
            console.detach()
        logger.info(f"[*] Session closed with {len(session.store)} finding(s)")
    return 0


def run_list(args, config: ShadowConfig) -> int:
    with ShadowSession(config) as session:
        print(render_tree(session.tree()))
    return 0


def run_export(args, config: ShadowConfig) -> int:
    with ShadowSession(config) as session:
        text = session.export()
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(text + ("\n" if text else ""))
        logger.info(f"Exported {len(text.splitlines())} paths to {args.output}")
    elif text:
        print(text)
    return 0


def run_clear(args, config: ShadowConfig) -> int:
    with ShadowSession(config) as session:
        session.clear()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shadowapi",
        description="Shadow API Visualizer: passive discovery of undocumented API endpoints",
    )
    parser.add_argument("--data-dir", help="Directory holding the session database")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    proxy_parser = subparsers.add_parser("proxy", help="Run the intercepting proxy")
    proxy_parser.add_argument("--host", help="Listen host")
    proxy_parser.add_argument("--port", type=int, help="Listen port")
    proxy_parser.add_argument("--scope-only", action="store_true", help="Only analyze in-scope traffic")
    proxy_parser.add_argument("--patterns", help="File with one endpoint regex per line")
    proxy_parser.add_argument("--scope", help="File with one scope rule per line")
    proxy_parser.set_defaults(func=run_proxy)

    list_parser = subparsers.add_parser("list", help="Show persisted findings as a tree")
    list_parser.set_defaults(func=run_list)

    export_parser = subparsers.add_parser("export", help="Print all known paths, one per line")
    export_parser.add_argument("-o", "--output", help="Write to a file instead of stdout")
    export_parser.set_defaults(func=run_export)

    clear_parser = subparsers.add_parser("clear", help="Delete all persisted findings")
    clear_parser.set_defaults(func=run_clear)

    return parser


def apply_overrides(args, config: ShadowConfig) -> ShadowConfig:
    """Fold command line flags over the env-derived configuration."""
    storage = config.storage
    if args.data_dir:
        storage = replace(storage, base_dir=Path(args.data_dir).expanduser())

    discovery = config.discovery
    proxy = config.proxy
    if args.command == "proxy":
        if args.scope_only:
            discovery = replace(discovery, scope_only=True)
        if args.patterns:
            discovery = replace(discovery, fragments=tuple(read_lines(args.patterns)))
        if args.scope:
            discovery = replace(discovery, scope_rules=tuple(read_lines(args.scope)))
        if args.host:
            proxy = replace(proxy, listen_host=args.host)
        if args.port:
            proxy = replace(proxy, listen_port=args.port)

    return replace(
        config,
        storage=storage,
        discovery=discovery,
        proxy=proxy,
        debug=config.debug or args.debug,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = apply_overrides(args, get_config())
    except ShadowError as e:
        print(f"shadowapi: {e.message}", file=sys.stderr)
        return 2
    set_config(config)
    setup_logging(config)
    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
