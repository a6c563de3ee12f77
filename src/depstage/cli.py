"""Command-line interface for depstage."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from .candidate.builder import discard_candidate, inspect_candidate
from .channels.resolver import ChannelArtifactResolver
from .common.logging_utils import configure_logging
from .constants import ExitCodes, _load_yaml_config, apply_cli_overrides, apply_config
from .errors import CandidateError, MetadataError, ResolutionError
from .installation.metadata import InstallationMetadata
from .versioning.models import ArtifactCoordinate

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="depstage",
        description="Resolve artifacts against installation channels and manage update candidates",
        add_help=True,
    )
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        default=None)
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Also write log records to this file",
                        action="store",
                        type=str)
    parser.add_argument("--config",
                        dest="CONFIG",
                        help="Path to a YAML configuration file",
                        action="store",
                        type=str)
    parser.add_argument("--offline",
                        dest="OFFLINE",
                        help="Resolve only from the local repository mirror",
                        action="store_true")
    parser.add_argument("--local-repository",
                        dest="LOCAL_REPOSITORY",
                        help="Directory used to mirror remote artifacts",
                        action="store",
                        type=str)
    parser.add_argument("--timeout",
                        dest="TIMEOUT",
                        help="HTTP timeout in seconds",
                        action="store",
                        type=int)

    sub = parser.add_subparsers(dest="COMMAND", required=True)

    resolve = sub.add_parser("resolve", help="Resolve an artifact against the installation's channels")
    resolve.add_argument("INSTALLATION", help="Installation base directory")
    resolve.add_argument("COORDINATE", help="groupId:artifactId[:extension[:classifier]]:version-or-range")
    resolve.add_argument("--list-versions",
                         dest="LIST_VERSIONS",
                         help="List offered versions instead of resolving",
                         action="store_true")

    history = sub.add_parser("history", help="List the installation's revisions")
    history.add_argument("INSTALLATION", help="Installation base directory")

    status = sub.add_parser("status", help="Check whether a candidate directory is complete")
    status.add_argument("CANDIDATE", help="Candidate directory")
    status.add_argument("--installation",
                        dest="INSTALLATION",
                        help="Also verify the marker's revision against this installation",
                        action="store",
                        type=str)

    discard = sub.add_parser("discard", help="Remove a candidate directory")
    discard.add_argument("CANDIDATE", help="Candidate directory")
    discard.add_argument("--force",
                         dest="FORCE",
                         help="Remove even if the directory looks like an installation",
                         action="store_true")

    return parser.parse_args(argv)


def _cmd_resolve(args: argparse.Namespace) -> int:
    coordinate = ArtifactCoordinate.parse(args.COORDINATE)
    metadata = InstallationMetadata.load(args.INSTALLATION)
    with ChannelArtifactResolver(metadata.channels) as resolver:
        if args.LIST_VERSIONS:
            result = resolver.get_version_range(coordinate)
            for channel, version in result.offers:
                print(f"{channel}\t{version}")
            return ExitCodes.SUCCESS.value if result.versions else ExitCodes.RESOLUTION_ERROR.value
        if coordinate.version and not coordinate.version_range:
            resolved = resolver.resolve(coordinate)
        else:
            resolved = resolver.resolve_latest_version(coordinate)
    print(f"{resolved}\t{resolved.path}")
    return ExitCodes.SUCCESS.value


def _cmd_history(args: argparse.Namespace) -> int:
    metadata = InstallationMetadata.load(args.INSTALLATION)
    for state in metadata.revisions():
        print(state)
    return ExitCodes.SUCCESS.value


def _cmd_status(args: argparse.Namespace) -> int:
    status = inspect_candidate(args.CANDIDATE, args.INSTALLATION)
    if status.complete and status.marker is not None:
        print(f"complete: {status.marker.operation.value} based on revision {status.marker.revision}")
        return ExitCodes.SUCCESS.value
    print(f"incomplete: {status.reason}")
    return ExitCodes.INCOMPLETE_CANDIDATE.value


def _cmd_discard(args: argparse.Namespace) -> int:
    if discard_candidate(args.CANDIDATE, force=args.FORCE):
        print(f"removed {args.CANDIDATE}")
    else:
        print(f"nothing to remove at {args.CANDIDATE}")
    return ExitCodes.SUCCESS.value


_COMMANDS = {
    "resolve": _cmd_resolve,
    "history": _cmd_history,
    "status": _cmd_status,
    "discard": _cmd_discard,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point; returns the process exit code."""
    args = parse_args(argv)
    configure_logging(args.LOG_LEVEL, args.LOG_FILE)
    apply_config(_load_yaml_config(args.CONFIG))
    apply_cli_overrides(args)

    try:
        return _COMMANDS[args.COMMAND](args)
    except ValueError as exc:
        logger.error("%s", exc)
        return ExitCodes.FILE_ERROR.value
    except ResolutionError as exc:
        logger.error("%s", exc)
        return ExitCodes.RESOLUTION_ERROR.value
    except (MetadataError, CandidateError) as exc:
        logger.error("%s", exc)
        return ExitCodes.FILE_ERROR.value


def run() -> None:
    """Console-script wrapper."""
    sys.exit(main())


if __name__ == "__main__":
    run()
