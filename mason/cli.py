from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from mason.foundation.errors import MasonError, PipelineError, format_error_chain

# subcommand -> (build, sign, publish)
_STAGE_FLAGS: dict[str, tuple[bool, bool, bool]] = {
    "test": (False, False, False),
    "build": (True, False, False),
    "sign": (True, True, False),
    "publish": (True, True, True),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mason", add_help=True)
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    parser.add_argument("-b", "--branch", default="master", help="Branch to check out (default: master)")
    parser.add_argument(
        "-w",
        "--workdir",
        default="",
        help="Persistent workspace path; you are responsible for keeping it clean",
    )
    parser.add_argument("--user-config", default=None, help="Per-user config file (default: ~/.mason.yaml)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("test", help="Check out the package in a clean GOPATH and run its tests")
    sub.add_parser("build", help="Test, then cross-compile every target in metadata.json")
    sub.add_parser("sign", help="Test, build, then sign the binaries")
    sub.add_parser("publish", help="Test, build, sign, then upload to the target repository")

    run = sub.add_parser("run", help="Run every stage")
    run.add_argument("--skip-sign", action="store_true", help="Do not sign artifacts")
    run.add_argument("--skip-publish", action="store_true", help="Do not publish artifacts")

    verify = sub.add_parser("verify", help="Verify detached signatures of built artifacts")
    verify.add_argument("paths", nargs="+")

    return parser


def _report_failure(exc: BaseException) -> None:
    if isinstance(exc, PipelineError):
        print(f"mason: stage '{exc.stage}' failed", file=sys.stderr)
    print(f"mason: {format_error_chain(exc)}", file=sys.stderr)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)

    if args.command == "verify":
        from .app.pipeline import verify_artifacts

        try:
            outcomes = verify_artifacts(args.paths, verbose=args.verbose, user_config_path=args.user_config)
        except MasonError as exc:
            _report_failure(exc)
            return 1
        return 0 if all(ok for ok, _ in outcomes.values()) else 1

    if args.command == "run":
        build, sign, publish = True, not args.skip_sign, not args.skip_publish
    elif args.command in _STAGE_FLAGS:
        build, sign, publish = _STAGE_FLAGS[args.command]
    else:
        raise AssertionError(f"Unhandled command: {args.command}")

    from .app.pipeline import run_release

    try:
        run_release(
            build=build,
            sign=sign,
            publish=publish,
            branch=args.branch,
            workdir=args.workdir or None,
            verbose=args.verbose,
            user_config_path=args.user_config,
        )
    except MasonError as exc:
        _report_failure(exc)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))
