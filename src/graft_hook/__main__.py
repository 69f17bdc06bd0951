"""CLI entrypoints for graft-hook (graft-hook serve, graft-hook check-config)."""

from __future__ import annotations

import argparse
import sys


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="graft-hook", description="Webhook deployment dispatcher")
    parser.add_argument("--config", help="Project registry file (overrides CONFIGPATH)")
    sub = parser.add_subparsers(dest="cmd")

    cmd_serve = sub.add_parser("serve", help="Start the webhook server (default)")
    cmd_serve.add_argument("--host", help="Bind address")
    cmd_serve.add_argument("--port", type=int, help="Bind port")

    sub.add_parser("check-config", help="Validate the project registry and list its projects")

    args = parser.parse_args(argv)

    from graft_hook.core.config import Settings

    overrides = {}
    if args.config:
        overrides["config_path"] = args.config
    if getattr(args, "host", None):
        overrides["host"] = args.host
    if getattr(args, "port", None):
        overrides["port"] = args.port
    settings = Settings(**overrides)

    if args.cmd == "check-config":
        from graft_hook.core.exceptions import ConfigurationError
        from graft_hook.deploy.registry import load_registry
        from graft_hook.utils.logging import setup_logging

        setup_logging(settings.log_level, settings.log_format)
        try:
            registry = load_registry(settings.config_path)
        except ConfigurationError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1
        for project in registry:
            print(f"{project.name}\t{project.path}")
        return 0

    from graft_hook.main import run

    run(settings)
    return 0


if __name__ == "__main__":
    sys.exit(main())
