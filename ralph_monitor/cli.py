#!/usr/bin/env python3
"""ralph-monitor CLI entrypoint."""

import sys
import argparse
import logging

from ralph_monitor.lib.config import MonitorConfig, load_config
from ralph_monitor.commands import serve as cmd_serve_module
from ralph_monitor.commands import state as cmd_state_module
from ralph_monitor.commands import watch as cmd_watch_module


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def get_config(args) -> MonitorConfig:
    """Resolve config from flags, environment and tasks/monitor.env."""
    config = load_config(
        work_dir=args.workdir,
        port=getattr(args, 'port', None),
        host=getattr(args, 'host', None),
        stale_seconds=getattr(args, 'stale_seconds', None),
        translate=getattr(args, 'translate', None),
    )
    if not config.work_dir.is_dir():
        print(f"ERROR: Work directory not found: {config.work_dir}")
        sys.exit(2)
    return config


def cmd_serve(args):
    return cmd_serve_module.cmd_serve(args, get_config(args))


def cmd_watch(args):
    return cmd_watch_module.cmd_watch(args, get_config(args))


def cmd_state(args):
    return cmd_state_module.cmd_state(args, get_config(args))


def _positive_int(raw):
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {raw}")
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {raw}")
    return value


def _add_session_options(p):
    p.add_argument('--stale-seconds', type=_positive_int, help='Flag in-progress stories older than this')
    p.add_argument('--translate', dest='translate', action='store_true', default=None,
                   help='Translate displayed text with the claude CLI')
    p.add_argument('--no-translate', dest='translate', action='store_false', help='Disable translation')


def build_parser():
    parser = argparse.ArgumentParser(prog='ralph-monitor', description='Monitor a Ralph agent session')
    parser.add_argument('--workdir', '-w', help='Session work directory (default: $WORK_DIR or cwd)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # ralph-monitor serve
    p_serve = subparsers.add_parser('serve', help='Run the HTTP dashboard backend')
    p_serve.add_argument('--port', '-p', type=_positive_int, help='Listen port (default 7420)')
    p_serve.add_argument('--host', help='Listen address (default 127.0.0.1)')
    _add_session_options(p_serve)
    p_serve.set_defaults(func=cmd_serve)

    # ralph-monitor watch
    p_watch = subparsers.add_parser('watch', help='Terminal monitor')
    _add_session_options(p_watch)
    p_watch.set_defaults(func=cmd_watch)

    # ralph-monitor state
    p_state = subparsers.add_parser('state', help='Print the current snapshot and exit')
    p_state.add_argument('--json', action='store_true', help='Print the full snapshot as JSON')
    p_state.set_defaults(func=cmd_state)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
