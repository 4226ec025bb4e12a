"""mthds-pkg: command line front end for the package resolution engine.

Commands:
    lock      resolve dependencies and write methods.lock
    install   fetch locked packages into the cache and verify their hashes
    validate  validate METHODS.toml and cross-domain pipe visibility
    exports   print the [exports] tables inferred from bundle files
    discover  list methods/ of a local directory or a GitHub repository
"""

import logging
import os
import sys

from args import parse_args
from common import toml_io
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from constants import Constants, ExitCodes, apply_env_overrides, default_cache_root, load_yaml_config
from exceptions import MthdsPackageError
from manifest.parser import nest_exports
from manifest.validate import validate_manifest
from repository.address import parse_address
from repository.github import resolve_from_github
from repository.local import resolve_from_local
from resolution.bundles import (
    build_domain_exports_from_scan,
    collect_mthds_files,
    extract_bundle_metadata,
    scan_bundles_for_domain_info,
)
from resolution.fetcher import VcsPackageFetcher
from resolution.lockfile import install_from_lock, lock_package
from resolution.visibility import check_visibility

logger = logging.getLogger(__name__)


def _setup_logging(args):
    """Configure logging from --loglevel and --logfile."""
    configure_logging(args.LOG_LEVEL)

    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", log_file)


def _apply_overrides(args):
    """Config file, then environment, then CLI flags (highest precedence)."""
    load_yaml_config(args.CONFIG)
    apply_env_overrides()
    if getattr(args, "CACHE_ROOT", None):
        Constants.CACHE_ROOT = args.CACHE_ROOT
    if getattr(args, "JOBS", None):
        Constants.RESOLVER_MAX_WORKERS = max(1, args.JOBS)


def _make_fetcher():
    return VcsPackageFetcher(
        cache_root=default_cache_root(),
        ls_remote_timeout=Constants.GIT_LS_REMOTE_TIMEOUT_SEC,
        clone_timeout=Constants.GIT_CLONE_TIMEOUT_SEC,
    )


def cmd_lock(args):
    lock_file = lock_package(
        os.path.abspath(args.DIRECTORY),
        _make_fetcher(),
        max_workers=Constants.RESOLVER_MAX_WORKERS,
    )
    for address in sorted(lock_file.packages):
        print(f"{address} {lock_file.packages[address].version}")
    return ExitCodes.SUCCESS


def cmd_install(args):
    installed, cached = install_from_lock(
        os.path.abspath(args.DIRECTORY),
        _make_fetcher(),
        cache_root=default_cache_root(),
    )
    print(f"{installed} installed, {cached} already cached. All packages verified.")
    return ExitCodes.SUCCESS


def cmd_validate(args):
    directory = os.path.abspath(args.DIRECTORY)
    manifest_path = os.path.join(directory, Constants.MANIFEST_FILENAME)
    try:
        with open(manifest_path, "r", encoding="utf-8") as f:
            raw = f.read()
    except OSError as e:
        logger.error("Cannot read %s: %s", manifest_path, e)
        return ExitCodes.FILE_ERROR

    result = validate_manifest(raw)
    if not result.valid:
        for error in result.errors:
            print(f"{Constants.MANIFEST_FILENAME}: {error}")
        return ExitCodes.PACKAGE_ERROR

    metadatas = [m for m in (extract_bundle_metadata(p) for p in collect_mthds_files(directory)) if m is not None]
    visibility_errors = check_visibility(result.manifest, metadatas)
    for error in visibility_errors:
        print(error.message)
    if visibility_errors:
        return ExitCodes.PACKAGE_ERROR

    print(f"{result.manifest.address} {result.manifest.version}: valid ({len(metadatas)} bundles checked)")
    return ExitCodes.SUCCESS


def cmd_exports(args):
    scan = scan_bundles_for_domain_info(collect_mthds_files(os.path.abspath(args.DIRECTORY)))
    for error in scan.errors:
        logger.warning(error)
    exports = build_domain_exports_from_scan(scan.domain_pipes, scan.domain_main_pipes)
    if exports:
        sys.stdout.write(toml_io.dumps({"exports": nest_exports(exports)}))
    return ExitCodes.SUCCESS


def cmd_discover(args):
    if args.LOCAL or os.path.isdir(args.SOURCE):
        repo = resolve_from_local(args.SOURCE)
    else:
        repo = resolve_from_github(parse_address(args.SOURCE))

    print(f"{repo.repo_name} ({repo.source}): {len(repo.methods)} methods, {len(repo.skipped)} skipped")
    for method in repo.methods:
        print(f"  {method.slug}: {method.manifest.address} {method.manifest.version} "
              f"({len(method.files)} bundles)")
    for skipped in repo.skipped:
        print(f"  {skipped.slug}: skipped")
        for error in skipped.errors:
            print(f"    - {error}")
    return ExitCodes.SUCCESS


COMMANDS = {
    "lock": cmd_lock,
    "install": cmd_install,
    "validate": cmd_validate,
    "exports": cmd_exports,
    "discover": cmd_discover,
}


def main(argv=None):
    """Main function of the program; returns the process exit code."""
    args = parse_args(argv)
    _setup_logging(args)
    _apply_overrides(args)

    if is_debug_enabled(logger):
        logger.debug("CLI start", extra=extra_context(
            event="function_entry", component="cli", action=args.COMMAND,
        ))

    try:
        exit_code = COMMANDS[args.COMMAND](args)
    except MthdsPackageError as e:
        logger.error("%s: %s", e.kind, e)
        return ExitCodes.PACKAGE_ERROR.value
    except OSError as e:
        logger.error("%s", e)
        return ExitCodes.FILE_ERROR.value
    return exit_code.value


if __name__ == "__main__":
    sys.exit(main())
