from __future__ import annotations

import argparse
import sys
import warnings
from typing import List, Optional

from .api import check, list_libraries, provision
from .core.errors import BuildError, DynlintError, DynlintWarning, format_error_chain
from .core.logging import configure_logging
from .core.options import Options
from .core.version import __version__


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dynlint")
    parser.add_argument("--version", action="version", version=f"dynlint {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    check_parser = sub.add_parser("check", help="Run the selected libraries")
    _add_selection_arguments(check_parser)
    check_parser.add_argument("--fix", action="store_true", help="Apply suggestions")
    check_parser.add_argument("--no-build", action="store_true")
    check_parser.add_argument("--no-deps", action="store_true")
    check_parser.add_argument("--keep-going", action="store_true")
    check_parser.add_argument("--manifest-path")
    check_parser.add_argument("-p", "--package", dest="packages", action="append", default=[])
    check_parser.add_argument("--workspace", action="store_true")
    check_parser.add_argument("args", nargs=argparse.REMAINDER)

    list_parser = sub.add_parser("list", help="List libraries without building or running them")
    _add_selection_arguments(list_parser)
    list_parser.add_argument("--manifest-path")

    provision_parser = sub.add_parser("provision", help="Build drivers ahead of time")
    provision_parser.add_argument("toolchains", nargs="+")
    provision_parser.add_argument("-q", "--quiet", action="store_true")
    provision_parser.add_argument("-v", "--verbose", action="count", default=0)
    return parser


def _add_selection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--all", action="store_true", help="Select every library")
    parser.add_argument("--lib", dest="libs", action="append", default=[], metavar="NAME")
    parser.add_argument("--path", dest="paths", action="append", default=[], metavar="LOC")
    parser.add_argument("--git", metavar="URL")
    refs = parser.add_mutually_exclusive_group()
    refs.add_argument("--branch")
    refs.add_argument("--tag")
    refs.add_argument("--rev")
    parser.add_argument("--pattern", metavar="GLOB")
    parser.add_argument("--no-metadata", action="store_true")
    parser.add_argument("-q", "--quiet", action="store_true")
    parser.add_argument("-v", "--verbose", action="count", default=0)


def options_from_args(args: argparse.Namespace) -> Options:
    extra = list(getattr(args, "args", []) or [])
    if extra and extra[0] == "--":
        extra = extra[1:]
    return Options(
        all=args.all,
        libs=list(args.libs),
        paths=list(args.paths),
        git=args.git,
        branch=args.branch,
        tag=args.tag,
        rev=args.rev,
        pattern=args.pattern,
        fix=getattr(args, "fix", False),
        keep_going=getattr(args, "keep_going", False),
        no_build=getattr(args, "no_build", False),
        no_deps=getattr(args, "no_deps", False),
        no_metadata=args.no_metadata,
        quiet=args.quiet,
        manifest_path=args.manifest_path,
        packages=list(getattr(args, "packages", []) or []),
        workspace=getattr(args, "workspace", False),
        args=extra,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", DynlintWarning)
        try:
            code = _run(args)
        except DynlintError as exc:
            _print_warnings(caught, args.quiet)
            _print_error(exc)
            return 1
    _print_warnings(caught, args.quiet)
    return code


def _run(args: argparse.Namespace) -> int:
    if args.command == "provision":
        for toolchain, path in sorted(provision(args.toolchains).items()):
            print(f"{toolchain}  {path}")
        return 0

    options = options_from_args(args)
    if args.command == "list":
        for line in list_libraries(options):
            print(line)
        return 0

    check(options)
    return 0


def _print_warnings(caught: List[warnings.WarningMessage], quiet: bool) -> None:
    if quiet:
        return
    for warning in caught:
        if issubclass(warning.category, DynlintWarning):
            print(f"Warning: {warning.message}", file=sys.stderr)
        else:
            warnings.showwarning(
                warning.message, warning.category, warning.filename, warning.lineno
            )


def _print_error(exc: DynlintError) -> None:
    print(f"Error: {format_error_chain(exc)}", file=sys.stderr)
    for hint in exc.diagnostic.hints:
        print(f"  hint: {hint}", file=sys.stderr)
    if isinstance(exc, BuildError) and exc.output:
        print(exc.output.rstrip("\n"), file=sys.stderr)


def run() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    run()
