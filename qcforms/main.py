#!/usr/bin/env python3
"""qcforms/main.py — CLI entry-point for the qcforms translator.

Usage examples
--------------
    # Print the Python expansion of every form in a file
    python -m qcforms expand props.qc

    # Same, against a differently named engine module
    python -m qcforms expand props.qc --engine-alias quickcheck -o props.py

    # Expand and report names no pattern or environment binds
    python -m qcforms check props.qc --known my_gen --known helpers

    # List every surface form with its usage string
    python -m qcforms forms

Exit codes
----------
    0   Success.
    1   A usage error, read error or unresolved name was reported.
    2   Infrastructure failure (missing file, bad arguments, etc.).

The module doubles as ``python -m qcforms`` via the companion
``qcforms/__main__.py`` which simply calls :func:`main`.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import textwrap
from pathlib import Path
from typing import List, Optional, Sequence, TextIO

from qcforms import __version__
from qcforms.config import TranslatorConfig
from qcforms.dispatcher import FORM_RULES
from qcforms.errors import QcFormsError
from qcforms.translator import Translation, Translator

_log = logging.getLogger("qcforms")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``qcforms`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("qcforms")
    root.setLevel(level)
    root.addHandler(handler)


def _resolve_path(raw: str, label: str = "file") -> Path:
    """Resolve *raw* to an absolute ``Path``, raising on missing files."""
    p = Path(raw).expanduser().resolve()
    if not p.exists():
        _log.error("%s not found: %s", label, p)
        raise SystemExit(EXIT_INFRA)
    return p


def _open_output(dest: Optional[str]) -> TextIO:
    """Return a writable text stream.

    *dest* ``None`` or ``"-"`` → ``sys.stdout``; otherwise open the path
    for writing (creating parent directories as needed).
    """
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _translate(args: argparse.Namespace, config: TranslatorConfig) -> Optional[List[Translation]]:
    """Translate ``args.source_file``; ``None`` after reporting an error."""
    src_path = _resolve_path(args.source_file, "source file")
    try:
        return Translator(config).translate_file(src_path)
    except QcFormsError as exc:
        sys.stderr.write(f"{exc}\n")
        detail = getattr(exc, "detail", None)
        if detail:
            _log.info("detail: %s", detail)
        return None
    except (OSError, UnicodeDecodeError) as exc:
        _log.error("cannot read %s: %s", src_path, exc)
        raise SystemExit(EXIT_INFRA)


# ===========================================================================
# Sub-command implementations
# ===========================================================================

def cmd_expand(args: argparse.Namespace) -> int:
    """Print one Python expression per top-level form."""
    config = TranslatorConfig(engine_alias=args.engine_alias, check_scopes=False)
    translations = _translate(args, config)
    if translations is None:
        return EXIT_ERROR

    out = _open_output(args.output)
    try:
        for translation in translations:
            if args.format == "json":
                out.write(json.dumps({
                    "form": translation.form.value if translation.form else None,
                    "line": translation.loc.line,
                    "source": translation.source,
                }) + "\n")
            else:
                out.write(f"# {translation.loc}\n{translation.source}\n")
    finally:
        if out is not sys.stdout:
            out.close()
    return EXIT_OK


def cmd_check(args: argparse.Namespace) -> int:
    """Expand every form and report unresolved names."""
    config = TranslatorConfig(
        engine_alias=args.engine_alias,
        check_scopes=True,
        known_names=tuple(args.known),
    )
    translations = _translate(args, config)
    if translations is None:
        return EXIT_ERROR

    error_count = 0
    for translation in translations:
        for diagnostic in translation.diagnostics:
            sys.stdout.write(diagnostic.to_gcc_format() + "\n")
            error_count += 1
    sys.stdout.write(
        f"\n--- {len(translations)} form(s), {error_count} unresolved name(s) ---\n"
    )
    return EXIT_ERROR if error_count > 0 else EXIT_OK


def cmd_forms(args: argparse.Namespace) -> int:
    """List every recognised surface form."""
    out = _open_output(args.output)
    try:
        for rule in FORM_RULES:
            out.write(f"  {rule.form.value:<14} ({rule.head} ...)\n")
            out.write(f"  {'':<14} {rule.usage}\n")
        out.write(f"\n{len(FORM_RULES)} form(s) available.\n")
    finally:
        if out is not sys.stdout:
            out.close()
    return EXIT_OK


# ===========================================================================
# Argument parser construction
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the full CLI argument parser with subcommands."""

    parser = argparse.ArgumentParser(
        prog="qcforms",
        description=(
            "qcforms — surface syntax for property-based tests.\n\n"
            "Expands forall/let/collect/ensure/... forms into Python call\n"
            "chains against a property/generator engine."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              qcforms expand props.qc
              qcforms check  props.qc --known my_gen
              qcforms forms
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    def _add_alias_arg(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--engine-alias",
            default="eqc",
            metavar="NAME",
            help="Name the expansions use for the engine (default: eqc).",
        )

    p_expand = subparsers.add_parser("expand", help="Print the Python expansion of a file.")
    p_expand.add_argument("source_file", metavar="FILE", help="Surface source file (.qc).")
    p_expand.add_argument(
        "-o", "--output",
        default=None,
        metavar="OUT",
        help="Write output to OUT instead of stdout.",
    )
    p_expand.add_argument(
        "--format",
        choices=("python", "json"),
        default="python",
        help="Output format (default: python).",
    )
    _add_alias_arg(p_expand)
    p_expand.set_defaults(func=cmd_expand)

    p_check = subparsers.add_parser("check", help="Report unresolved names in a file.")
    p_check.add_argument("source_file", metavar="FILE", help="Surface source file (.qc).")
    p_check.add_argument(
        "--known",
        action="append",
        default=[],
        metavar="NAME",
        help="A global name available to the expansions (repeatable).",
    )
    _add_alias_arg(p_check)
    p_check.set_defaults(func=cmd_check)

    p_forms = subparsers.add_parser("forms", help="List every surface form.")
    p_forms.add_argument("-o", "--output", default=None, metavar="OUT")
    p_forms.set_defaults(func=cmd_forms)

    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the qcforms CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA

    _configure_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA
    except Exception as exc:
        _log.error("Unhandled exception: %s", exc, exc_info=True)
        return EXIT_INFRA


if __name__ == "__main__":
    sys.exit(main())
