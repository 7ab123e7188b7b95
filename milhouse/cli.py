#!/usr/bin/env python3
"""milhouse CLI entrypoint."""

import argparse
import logging
import sys
from pathlib import Path

from milhouse import __version__
from milhouse.commands import chat as cmd_chat_module
from milhouse.commands import config as cmd_config_module
from milhouse.commands import init as cmd_init_module
from milhouse.commands import run as cmd_run_module
from milhouse.commands import status as cmd_status_module
from milhouse.lib.constants import VALID_MODELS

_LOG_LEVELS = [logging.WARNING, logging.INFO, logging.DEBUG]


def get_base_path(args) -> Path:
    """Project root: --dir if given, else the current directory."""
    return Path(args.dir).resolve() if args.dir else Path.cwd()


def cmd_init(args):
    return cmd_init_module.cmd_init(args, get_base_path(args))


def cmd_status(args):
    return cmd_status_module.cmd_status(args, get_base_path(args))


def cmd_run(args):
    return cmd_run_module.cmd_run(args, get_base_path(args))


def cmd_chat(args):
    return cmd_chat_module.cmd_chat(args, get_base_path(args))


def cmd_config_show(args):
    return cmd_config_module.cmd_config_show(args, get_base_path(args))


def cmd_config_init(args):
    return cmd_config_module.cmd_config_init(args, get_base_path(args))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='mil', description='Autonomous planner/builder/reviewer loop')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--dir', '-C', help='Project directory (default: current directory)')
    parser.add_argument('-v', '--verbose', dest='log_verbosity', action='count', default=0,
                        help='More log output (-v info, -vv debug)')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # mil init
    p_init = subparsers.add_parser('init', help='Create .milhouse/ in the project')
    p_init.add_argument('--force', action='store_true', help='Fill in missing files of an existing .milhouse/')
    p_init.set_defaults(func=cmd_init)

    # mil status
    p_status = subparsers.add_parser('status', help='Show requirements by status')
    p_status.add_argument('--verbose', '-v', action='store_true', help='Show criteria, notes and token stats')
    p_status.set_defaults(func=cmd_status)

    # mil run
    p_run = subparsers.add_parser('run', help='Run planner/builder/reviewer iterations')
    p_run.add_argument('iterations', type=int, help='Maximum number of iterations')
    for phase in ('planner', 'builder', 'reviewer'):
        p_run.add_argument(f'--{phase}-model', choices=VALID_MODELS, help=f'Model for the {phase}')
        p_run.add_argument(f'--{phase}-max-tokens', type=int, help=f'Token ceiling for the {phase}')
    p_run.add_argument('--max-idle', type=int, help='Stop after this many consecutive idle iterations')
    p_run.add_argument('--no-flow', action='store_true', help='Run without the Prefect flow wrapper')
    p_run.set_defaults(func=cmd_run)

    # mil chat
    p_chat = subparsers.add_parser('chat', help='Interactive session for shaping requirements')
    p_chat.add_argument('--model', choices=VALID_MODELS, help='Model for the session')
    p_chat.set_defaults(func=cmd_chat)

    # mil config
    p_config = subparsers.add_parser('config', help='Show or create .milhouse/config.yaml')
    config_sub = p_config.add_subparsers(dest='config_command', required=True)
    p_config_show = config_sub.add_parser('show', help='Print the effective configuration')
    p_config_show.set_defaults(func=cmd_config_show)
    p_config_init = config_sub.add_parser('init', help='Write config.yaml with default settings')
    p_config_init.set_defaults(func=cmd_config_init)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=_LOG_LEVELS[min(args.log_verbosity, 2)],
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
