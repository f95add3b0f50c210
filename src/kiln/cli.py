"""
Command-line interface for Kiln.

This module provides the `kiln` CLI tool for resolving dependencies and
building native port drivers.
"""

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from kiln import __version__
from kiln.build.orchestrator import BuildOrchestrator, BuildResult
from kiln.cli_utils import ErrorFormatter, PathValidator, setup_logging


@dataclass
class DepsArgs:
    """Arguments for the check-deps and get-deps commands."""

    project_dir: Path
    verbose: bool = False


@dataclass
class CompileArgs:
    """Arguments for the compile command."""

    project_dir: Path
    jobs: int = 1
    verbose: bool = False


@dataclass
class CleanArgs:
    """Arguments for the clean command."""

    project_dir: Path
    verbose: bool = False


def _finish(result: BuildResult, failure_title: str) -> None:
    if result.success:
        ErrorFormatter.print_success(result.message)
        sys.exit(0)
    ErrorFormatter.print_error(failure_title, result.message)
    sys.exit(1)


def check_deps_command(args: DepsArgs) -> None:
    """Verify that every dependency is available.

    Examples:
        kiln check-deps                # Check the current project
        kiln check-deps path/to/app    # Check a specific project
    """
    try:
        result = BuildOrchestrator(verbose=args.verbose).check_deps(args.project_dir)
        _finish(result, "Dependency check failed!")
    except FileNotFoundError as e:
        ErrorFormatter.handle_file_not_found(e)
    except PermissionError as e:
        ErrorFormatter.handle_permission_error(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def get_deps_command(args: DepsArgs) -> None:
    """Fetch missing dependencies from source control.

    Examples:
        kiln get-deps                  # Fetch into ./deps
        kiln get-deps -v               # Show debug logging
    """
    try:
        result = BuildOrchestrator(verbose=args.verbose).get_deps(args.project_dir)
        if result.success and result.fetched:
            print()
            for dep in result.fetched:
                print(f"  {dep.app}: {dep.dir}")
        _finish(result, "Fetching dependencies failed!")
    except FileNotFoundError as e:
        ErrorFormatter.handle_file_not_found(e)
    except PermissionError as e:
        ErrorFormatter.handle_permission_error(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def compile_command(args: CompileArgs) -> None:
    """Compile the project's port and its project-local dependencies.

    Examples:
        kiln compile                   # Build the current project
        kiln compile -j 8              # Compile 8 sources at a time
        kiln compile --verbose         # Verbose output
    """
    print(f"Kiln Build System v{__version__}")
    print()

    try:
        orchestrator = BuildOrchestrator(jobs=args.jobs, verbose=args.verbose)
        result = orchestrator.compile(args.project_dir)

        if result.success:
            print()
            print(f"Compiled: {len(result.compiled)} source(s)")
            for output in result.linked:
                print(f"Linked:   {output}")
            for output in result.skipped:
                print(f"Up to date: {output}")
            print(f"Build time: {result.build_time:.2f}s")
        _finish(result, "Build failed!")
    except FileNotFoundError as e:
        ErrorFormatter.handle_file_not_found(e)
    except PermissionError as e:
        ErrorFormatter.handle_permission_error(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def clean_command(args: CleanArgs) -> None:
    """Delete object files and shared objects.

    Examples:
        kiln clean
    """
    try:
        result = BuildOrchestrator(verbose=args.verbose).clean(args.project_dir)
        if args.verbose:
            for path in result.deleted:
                print(f"Deleted {path}")
        _finish(result, "Clean failed!")
    except FileNotFoundError as e:
        ErrorFormatter.handle_file_not_found(e)
    except PermissionError as e:
        ErrorFormatter.handle_permission_error(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "project_dir",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Project directory (default: current directory)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kiln",
        description="Kiln - dependency and native driver build tool",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"kiln {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    check_parser = subparsers.add_parser(
        "check-deps",
        help="Verify that all dependencies are available",
    )
    _add_common_arguments(check_parser)

    get_parser = subparsers.add_parser(
        "get-deps",
        help="Fetch missing dependencies from source control",
    )
    _add_common_arguments(get_parser)

    compile_parser = subparsers.add_parser(
        "compile",
        help="Compile port sources into shared objects",
    )
    _add_common_arguments(compile_parser)
    compile_parser.add_argument(
        "-j",
        "--jobs",
        default=1,
        type=int,
        help="Number of parallel compilations (default: 1)",
    )

    clean_parser = subparsers.add_parser(
        "clean",
        help="Delete compiled artifacts",
    )
    _add_common_arguments(clean_parser)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Kiln - dependency and native driver build tool."""
    parser = build_parser()
    parsed_args = parser.parse_args(argv)

    # If no command specified, show help
    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    PathValidator.validate_project_dir(parsed_args.project_dir)
    setup_logging(parsed_args.verbose)

    if parsed_args.command == "check-deps":
        check_deps_command(DepsArgs(project_dir=parsed_args.project_dir, verbose=parsed_args.verbose))
    elif parsed_args.command == "get-deps":
        get_deps_command(DepsArgs(project_dir=parsed_args.project_dir, verbose=parsed_args.verbose))
    elif parsed_args.command == "compile":
        compile_command(
            CompileArgs(
                project_dir=parsed_args.project_dir,
                jobs=parsed_args.jobs,
                verbose=parsed_args.verbose,
            )
        )
    elif parsed_args.command == "clean":
        clean_command(CleanArgs(project_dir=parsed_args.project_dir, verbose=parsed_args.verbose))


if __name__ == "__main__":
    main()
