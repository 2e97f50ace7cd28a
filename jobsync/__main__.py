#!/usr/bin/env python
"""
The main module provides the executable entrypoint for jobsync
"""

# Standard
from typing import Dict, List, Tuple
import argparse

# First Party
import alog

# Local
from .cmd import RunControllerCmd
from .config import library_config
from .log_format import JobSyncJsonFormatter

## Constants ###################################################################

log = alog.use_channel("MAIN")

## Helpers #####################################################################


def add_library_config_args(parser, config_obj=None) -> Dict[str, str]:
    """Automatically add args for all elements of the library config"""
    setters = {}
    config_obj = config_obj if config_obj is not None else library_config
    for key, val in config_obj.items():
        kwargs = {
            "default": val,
            "dest": key,
            "help": f"Library config override for {key} (see jobsync.config)",
        }
        if isinstance(val, list):
            kwargs["nargs"] = "*"
        elif isinstance(val, bool):
            kwargs["action"] = "store_true"
        elif val is not None:
            kwargs["type"] = type(val)

        if (
            f"--{key}"
            not in parser._option_string_actions  # pylint: disable=protected-access
        ):
            parser.add_argument(f"--{key}", **kwargs)
            setters[key] = key
    return setters


def update_library_config(args, setters: Dict[str, str]):
    """Update the library config values based on the parsed arguments"""
    for dest_name, config_key in setters.items():
        library_config[config_key] = getattr(args, dest_name)


def add_command(
    subparsers: argparse._SubParsersAction,
    cmd: RunControllerCmd,
) -> Tuple[argparse.ArgumentParser, Dict[str, str]]:
    """Add the subparser and set up the default fun call"""
    parser = cmd.add_subparser(subparsers)
    parser.set_defaults(func=cmd.cmd)
    library_args = parser.add_argument_group("Library Configuration")
    library_config_setters = add_library_config_args(library_args)
    return parser, library_config_setters


## Main ########################################################################


def main(argv: List[str] = None):
    """The main module provides the executable entrypoint for jobsync"""
    parser = argparse.ArgumentParser(description=__doc__)

    # Add the subcommands
    subparsers = parser.add_subparsers(help="Available commands", dest="command")
    run_controller_cmd = RunControllerCmd()
    run_controller_parser, library_config_setters = add_command(
        subparsers, run_controller_cmd
    )

    # Use a preliminary parser to check for the presence of a command and fall
    # back to the default command if not found
    check_parser = argparse.ArgumentParser(add_help=False)
    check_parser.add_argument("command", nargs="?")
    check_args, _ = check_parser.parse_known_args(argv)
    if check_args.command not in subparsers.choices:
        args = run_controller_parser.parse_args(argv)
    else:
        args = parser.parse_args(argv)

    # Provide overrides to the library configs
    update_library_config(args, library_config_setters)

    # Reconfigure logging
    alog.configure(
        default_level=library_config.log_level,
        filters=library_config.log_filters,
        formatter=JobSyncJsonFormatter() if library_config.log_json else "pretty",
        thread_id=library_config.log_thread_id,
    )

    # Run the command's function
    args.func(args)


if __name__ == "__main__":  # pragma: no cover
    main()
