# Copyright Red Hat
#
# dirdelta/command.py - Directory delta command interface
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""The ``dirdelta.command`` module provides the dirdelta command line
interface: creating a patch archive from two directory trees, applying
a patch archive to an old tree, and showing the manifest of a patch.
"""
from argparse import ArgumentParser
from os.path import basename
from json import dumps
from uuid import uuid4
import logging
import sys
import os

from dirdelta import (
    DIRDELTA_DEBUG_TREE,
    DIRDELTA_DEBUG_PATCH,
    DIRDELTA_DEBUG_COMMAND,
    DIRDELTA_DEBUG_ALL,
    DIRDELTA_SUBSYSTEM_COMMAND,
    DirDeltaIOError,
    SubsystemFilter,
    set_debug_mask,
    __version__,
)
from .patch import PatchApplier, PatchCreator, PatchOptions, read_manifest
from .patch.fingerprint import HASH_TYPES

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_command(msg, *args, **kwargs):
    """A wrapper for command subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": DIRDELTA_SUBSYSTEM_COMMAND}, **kwargs)


_DEFAULT_LOG_LEVEL = logging.WARNING
_CONSOLE_HANDLER = None

#: Output name selecting standard output
_STDOUT = "-"


def create_patch(old_dir, new_dir, output, options=None, print_paths=False):
    """
    Create a patch archive at ``output`` describing the changes from
    ``old_dir`` to ``new_dir``.

    The archive is written to a temporary file beside ``output`` and moved
    into place only when patch creation succeeds: a file already present
    at ``output`` is left untouched by a failed run.

    :param old_dir: The old tree location (directory or ZIP archive).
    :param new_dir: The new tree location (directory or ZIP archive).
    :param output: The output file path, or "-" for standard output.
    :param options: Optional ``PatchOptions`` for the run.
    :param print_paths: Print every visited path to standard output.
    :returns: The ``ClassificationResult`` written to the archive.
    """
    visit = print if print_paths else None
    creator = PatchCreator(options, visit=visit)

    if output == _STDOUT:
        result = creator.create(old_dir, new_dir, sys.stdout.buffer)
        sys.stdout.buffer.flush()
        return result

    out_dir, out_name = os.path.split(os.path.abspath(output))
    tmp_path = os.path.join(out_dir, f".{out_name}.{uuid4().hex[:8]}.tmp")
    try:
        with open(tmp_path, "xb") as sink:
            result = creator.create(old_dir, new_dir, sink)
        os.replace(tmp_path, output)
    except OSError as err:
        raise DirDeltaIOError(f"Failed to write patch {output}: {err}") from err
    finally:
        if os.path.exists(tmp_path):
            _log_debug_command("Removing partial patch output %s", tmp_path)
            os.unlink(tmp_path)
    return result


def apply_patch(old_dir, patch, out_dir, options=None):
    """
    Apply the patch archive ``patch`` to ``old_dir``, writing the new tree
    to ``out_dir``.

    :param old_dir: The old tree location (directory or ZIP archive).
    :param patch: The patch archive path.
    :param out_dir: An empty or absent output directory.
    :param options: Optional ``PatchOptions`` for the run.
    :returns: The ``ClassificationResult`` recorded in the patch.
    """
    try:
        return PatchApplier(options).apply(old_dir, patch, out_dir)
    except OSError as err:
        raise DirDeltaIOError(f"Failed to apply patch {patch}: {err}") from err


def _create_cmd(cmd_args):
    """
    Create patch command handler.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    if cmd_args.print_paths and cmd_args.output == _STDOUT:
        _log_error("Option --print-paths cannot be used with --output=-")
        return 1

    options = PatchOptions.from_cmd_args(cmd_args)
    _log_debug_command("Creating patch with options:\n%s", options)
    result = create_patch(
        cmd_args.old_dir,
        cmd_args.new_dir,
        cmd_args.output,
        options=options,
        print_paths=cmd_args.print_paths,
    )
    if cmd_args.output != _STDOUT:
        print(f"Created patch {cmd_args.output}: {result}")
    return 0


def _apply_cmd(cmd_args):
    """
    Apply patch command handler.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    options = PatchOptions.from_cmd_args(cmd_args)
    result = apply_patch(cmd_args.old_dir, cmd_args.patch, cmd_args.output, options)
    print(f"Applied patch {cmd_args.patch} to {cmd_args.output}: {result}")
    return 0


def _show_cmd(cmd_args):
    """
    Show patch command handler.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    result = read_manifest(cmd_args.patch)
    if cmd_args.json:
        print(dumps([entry.to_dict() for entry in result.entries()], indent=4))
    else:
        for entry in result.entries():
            print(entry)
    return 0


def setup_logging(cmd_args):
    """
    Set up dirdelta logging.
    """
    # pylint: disable=global-statement
    global _CONSOLE_HANDLER
    level = _DEFAULT_LOG_LEVEL
    if cmd_args.verbose and cmd_args.verbose > 1:
        level = logging.DEBUG
    elif cmd_args.verbose and cmd_args.verbose > 0:
        level = logging.INFO

    dirdelta_log = logging.getLogger("dirdelta")
    formatter = logging.Formatter("%(levelname)s - %(message)s")
    dirdelta_log.setLevel(level)
    if dirdelta_log.hasHandlers():
        dirdelta_log.handlers.clear()

    # Subsystem log filtering
    _dirdelta_subsystem_filter = SubsystemFilter("dirdelta")

    _CONSOLE_HANDLER = logging.StreamHandler(sys.stderr)
    _CONSOLE_HANDLER.setLevel(level)
    _CONSOLE_HANDLER.setFormatter(formatter)
    _CONSOLE_HANDLER.addFilter(_dirdelta_subsystem_filter)

    dirdelta_log.addHandler(_CONSOLE_HANDLER)


def shutdown_logging():
    """
    Shut down dirdelta logging.
    """
    logging.shutdown()


def set_debug(debug_arg):
    """
    Set debugging mask from command line argument.
    """
    if not debug_arg:
        return

    mask_map = {
        "tree": DIRDELTA_DEBUG_TREE,
        "patch": DIRDELTA_DEBUG_PATCH,
        "command": DIRDELTA_DEBUG_COMMAND,
        "all": DIRDELTA_DEBUG_ALL,
    }

    mask = 0
    for name in debug_arg.split(","):
        if name not in mask_map:
            raise ValueError(f"Unknown debug option: {name}")
        mask |= mask_map[name]
    set_debug_mask(mask)


def _add_create_subparser(type_subparser):
    """
    Add the create command parser.
    """
    create_parser = type_subparser.add_parser(
        "create", help="Create a patch archive from two trees"
    )
    create_parser.add_argument(
        "old_dir", metavar="OLD", help="Old directory (or ZIP archive)"
    )
    create_parser.add_argument(
        "new_dir", metavar="NEW", help="New directory (or ZIP archive)"
    )
    create_parser.add_argument(
        "-o",
        "--output",
        metavar="OUTPUT",
        required=True,
        help="Output patch file path ('-' for standard output)",
    )
    create_parser.add_argument(
        "-H",
        "--hash",
        dest="hash_algorithm",
        choices=sorted(HASH_TYPES.keys()),
        help="Content hash algorithm (default: sha1)",
    )
    create_parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        help="Number of threads used to hash files (default: 1)",
    )
    create_parser.add_argument(
        "-i",
        "--include",
        dest="file_patterns",
        metavar="PATTERN",
        action="append",
        help="Only include relative paths matching PATTERN (glob notation)",
    )
    create_parser.add_argument(
        "-x",
        "--exclude",
        dest="exclude_patterns",
        metavar="PATTERN",
        action="append",
        help="Exclude relative paths matching PATTERN (glob notation)",
    )
    create_parser.add_argument(
        "-P",
        "--print-paths",
        action="store_true",
        help="Print every path visited while scanning the trees",
    )
    create_parser.set_defaults(func=_create_cmd)


def _add_apply_subparser(type_subparser):
    """
    Add the apply command parser.
    """
    apply_parser = type_subparser.add_parser(
        "apply", help="Apply a patch archive to an old tree"
    )
    apply_parser.add_argument(
        "old_dir", metavar="OLD", help="Old directory (or ZIP archive)"
    )
    apply_parser.add_argument("patch", metavar="PATCH", help="Patch archive path")
    apply_parser.add_argument(
        "-o",
        "--output",
        metavar="OUTDIR",
        required=True,
        help="Empty or absent directory receiving the new tree",
    )
    apply_parser.add_argument(
        "--no-verify",
        dest="verify",
        action="store_false",
        default=None,
        help="Do not verify content hashes",
    )
    apply_parser.set_defaults(func=_apply_cmd)


def _add_show_subparser(type_subparser):
    """
    Add the show command parser.
    """
    show_parser = type_subparser.add_parser(
        "show", help="Show the manifest of a patch archive"
    )
    show_parser.add_argument("patch", metavar="PATCH", help="Patch archive path")
    show_parser.add_argument(
        "--json", action="store_true", help="Output the manifest as JSON"
    )
    show_parser.set_defaults(func=_show_cmd)


def main(args):
    """
    Main entry point for dirdelta.
    """
    parser = ArgumentParser(
        description="Directory delta patch tool", prog=basename(args[0])
    )

    # Global arguments
    parser.add_argument(
        "-d",
        "--debug",
        metavar="DEBUGOPTS",
        type=str,
        help="A list of debug options to enable (tree,patch,command,all)",
    )
    parser.add_argument("-v", "--verbose", help="Enable verbose output", action="count")
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        help="Report the version number of dirdelta",
        version=__version__,
    )
    type_subparser = parser.add_subparsers(dest="type", help="Command")

    _add_create_subparser(type_subparser)
    _add_apply_subparser(type_subparser)
    _add_show_subparser(type_subparser)

    cmd_args = parser.parse_args(args[1:])

    status = 1

    try:
        set_debug(cmd_args.debug)
    except ValueError as err:
        print(err)
        parser.print_help()
        return status

    setup_logging(cmd_args)

    _log_debug_command("Parsed %s", " ".join(args[1:]))

    if "func" not in cmd_args:
        parser.print_help()
        return status

    if cmd_args.debug:
        status = cmd_args.func(cmd_args)
    else:
        try:
            status = cmd_args.func(cmd_args)
        # pylint: disable=broad-except
        except KeyboardInterrupt:  # pragma: no cover
            _log_info("Exiting on user cancel")
        except Exception as err:
            _log_error("Command failed: %s", err)

    shutdown_logging()
    return status


# vim: set et ts=4 sw=4 :
