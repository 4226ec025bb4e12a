"""Argument parsing functionality for mthds-pkg."""

import argparse

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def _add_directory_argument(parser):
    parser.add_argument("-d", "--directory",
                        dest="DIRECTORY",
                        help="Package directory containing METHODS.toml (default: current directory)",
                        action="store",
                        type=str,
                        default=".")


def build_parser():
    """Build the top-level parser with one subparser per command."""
    parser = argparse.ArgumentParser(
        prog="mthds-pkg",
        description=(
            "mthds-pkg - Dependency resolution and lock files for method packages"
        ),
        add_help=True,
    )

    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=LOG_LEVELS,
                        default=None)
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML)",
                        action="store",
                        type=str)
    parser.add_argument("--cache-root",
                        dest="CACHE_ROOT",
                        help="Package cache directory (default: ~/.mthds/packages)",
                        action="store",
                        type=str)

    subparsers = parser.add_subparsers(dest="COMMAND", metavar="COMMAND")
    subparsers.required = True

    lock_parser = subparsers.add_parser(
        "lock", help="Resolve dependencies and write methods.lock")
    _add_directory_argument(lock_parser)
    lock_parser.add_argument("-j", "--jobs",
                             dest="JOBS",
                             help="Concurrent git operations during resolution",
                             action="store",
                             type=int)

    install_parser = subparsers.add_parser(
        "install", help="Fetch locked packages into the cache and verify them")
    _add_directory_argument(install_parser)

    validate_parser = subparsers.add_parser(
        "validate", help="Validate METHODS.toml and pipe visibility of the package's bundles")
    _add_directory_argument(validate_parser)

    exports_parser = subparsers.add_parser(
        "exports", help="Print the [exports] tables inferred from the package's bundles")
    _add_directory_argument(exports_parser)

    discover_parser = subparsers.add_parser(
        "discover", help="List the methods/ of a local directory or a GitHub repository")
    discover_parser.add_argument("SOURCE",
                                 help="Local directory, or org/repo[/subpath] on GitHub",
                                 type=str)
    discover_parser.add_argument("--local",
                                 dest="LOCAL",
                                 help="Treat SOURCE as a local directory",
                                 action="store_true")

    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
