#!/usr/bin/env python3
"""
eolforge

Detect or normalize the line delimiters (LF, CR, CRLF) of files matched by
glob patterns.
"""

import argparse
import glob
import logging
import os
import re
import shutil
import sys
import time
from dataclasses import dataclass
from enum import Enum
from itertools import count
from typing import FrozenSet, List, Optional, Sequence, Tuple

from tqdm import tqdm

from eolforge import __version__, codec
from eolforge.codec import FileContents
from eolforge.delimiter import Delimiter, format_delimiter_set

BUF_SIZE = 1 << 20

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("eolforge")

# Three or more consecutive stars are neither "*" nor "**".
_BAD_STARS_RE = re.compile(r"\*{3,}")
# "**" has to be a whole path component.
_PARTIAL_RECURSIVE_RE = re.compile(r"[^/\\]\*\*|\*\*[^/\\]")

# Match dotfiles with "*" where glob supports it.
_GLOB_OPTIONS = {"include_hidden": True} if sys.version_info >= (3, 11) else {}


class PatternError(ValueError):
    """A file pattern that cannot be expanded."""


class Outcome(Enum):
    CONVERTED = "converted"
    REPORTED = "reported"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass
class RunSummary:
    converted: int = 0
    reported: int = 0
    unchanged: int = 0
    errors: int = 0

    def record(self, outcome: Outcome) -> None:
        if outcome is Outcome.CONVERTED:
            self.converted += 1
        elif outcome is Outcome.REPORTED:
            self.reported += 1
        elif outcome is Outcome.UNCHANGED:
            self.unchanged += 1
        else:
            self.errors += 1


def configure_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """Send log records to stderr, and to ``log_file`` when given."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a"))
    logging.basicConfig(
        level=logging.INFO, format=LOG_FORMAT, handlers=handlers, force=True
    )
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def validate_pattern(pattern: str) -> None:
    """Raise PatternError if ``pattern`` is not a usable glob."""
    if not pattern.strip():
        raise PatternError("empty pattern")
    if _BAD_STARS_RE.search(pattern):
        raise PatternError(f"wildcards are either '*' or '**': {pattern!r}")
    if _PARTIAL_RECURSIVE_RE.search(pattern):
        raise PatternError(
            f"recursive wildcards must form a path component: {pattern!r}"
        )

    # Every "[" has to be closed. A "]" right after "[" or "[!" is a literal.
    i = 0
    while i < len(pattern):
        if pattern[i] == "[":
            j = i + 1
            if j < len(pattern) and pattern[j] == "!":
                j += 1
            if j < len(pattern) and pattern[j] == "]":
                j += 1
            close = pattern.find("]", j)
            if close == -1:
                raise PatternError(f"unclosed '[' in pattern: {pattern!r}")
            i = close
        i += 1


def expand_pattern(pattern: str) -> List[str]:
    """Expand a glob pattern into the regular files it matches."""
    validate_pattern(pattern)
    return sorted(
        path for path in glob.glob(pattern, recursive=True, **_GLOB_OPTIONS)
        if os.path.isfile(path)
    )


def collect_files(patterns: Sequence[str]) -> Tuple[List[str], int]:
    """Expand every pattern. Returns the files and the number of bad patterns."""
    files: List[str] = []
    seen = set()
    failures = 0

    for pattern in patterns:
        try:
            matched = expand_pattern(pattern)
        except PatternError as e:
            logger.error("Invalid pattern %r: %s", pattern, e)
            failures += 1
            continue

        if not matched:
            logger.warning("No files matched pattern: %s", pattern)
        for path in matched:
            if path not in seen:
                seen.add(path)
                files.append(path)

    return files, failures


def temporary_path(path: str) -> str:
    """First free ``<path>.tmpN`` next to ``path``."""
    for index in count():
        candidate = f"{path}.tmp{index}"
        if not os.path.lexists(candidate):
            return candidate
    raise AssertionError("unreachable")


def replace_file(path: str, contents: FileContents, target: Delimiter) -> None:
    """Rewrite ``path`` with ``contents`` via a temporary file and an atomic rename."""
    tmp_path = temporary_path(path)
    created = False
    try:
        with open(tmp_path, "xb", buffering=BUF_SIZE) as f:
            created = True
            codec.write_to(contents, f, target)
            f.flush()
            os.fsync(f.fileno())
        shutil.copymode(path, tmp_path)
        os.replace(tmp_path, path)
    except BaseException:
        if created:
            try:
                os.remove(tmp_path)
            except OSError as cleanup_err:
                logger.warning(
                    "Could not remove temporary file %s: %s", tmp_path, cleanup_err
                )
        raise


def display_path(path: str) -> str:
    """Printable form of ``path``; undecodable bytes become ``\\xNN`` escapes."""
    return os.fsencode(path).decode("utf-8", "backslashreplace")


def format_report(path: str, delimiters: FrozenSet[Delimiter]) -> str:
    return f"{display_path(path)}: {format_delimiter_set(delimiters)}"


def process_file(path: str, target: Delimiter, detect_only: bool = False) -> Outcome:
    """Report or convert one file whose delimiters are not all ``target``."""
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        logger.error("Error reading %s: %s", path, e)
        return Outcome.FAILED

    contents = codec.parse(data)
    found = codec.delimiter_set(contents)

    if not codec.needs_conversion(found, target):
        logger.debug("No changes needed for file: %s", path)
        return Outcome.UNCHANGED

    if detect_only:
        tqdm.write(format_report(path, found), file=sys.stdout)
        return Outcome.REPORTED

    try:
        replace_file(path, contents, target)
    except OSError as e:
        logger.error("Error writing %s: %s", path, e)
        return Outcome.FAILED

    logger.debug(
        "Converted %s: %s -> %s", path, format_delimiter_set(found), target.label
    )
    return Outcome.CONVERTED


def process_files(
    files: Sequence[str],
    target: Delimiter,
    detect_only: bool = False,
    show_progress: bool = True,
) -> RunSummary:
    """Process files one after another."""
    summary = RunSummary()

    with tqdm(
        total=len(files),
        desc="Detecting" if detect_only else "Converting",
        unit="file",
        disable=not show_progress,
    ) as pbar:
        for path in files:
            try:
                outcome = process_file(path, target, detect_only)
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error(
                    "Unhandled error processing %s: %s", display_path(path), e
                )
                outcome = Outcome.FAILED
            finally:
                pbar.update(1)
            summary.record(outcome)

    if summary.errors > 0:
        logger.warning("Encountered errors while processing %d files", summary.errors)
    logger.info(
        "Converted: %d, Reported: %d, Unchanged: %d, Errors: %d",
        summary.converted,
        summary.reported,
        summary.unchanged,
        summary.errors,
    )
    return summary


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.2f} seconds"
    if seconds < 3600:
        minutes = int(seconds // 60)
        return (
            f"{minutes} minute{'s' if minutes != 1 else ''} "
            f"{seconds % 60:.2f} seconds"
        )
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    return (
        f"{hours} hour{'s' if hours != 1 else ''} "
        f"{minutes} minute{'s' if minutes != 1 else ''} "
        f"{seconds % 60:.2f} seconds"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="eolforge",
        description="Detect or convert the line delimiters of files",
    )
    parser.add_argument(
        "patterns",
        nargs="+",
        help="Glob patterns of files to process (use '**' to recurse)",
    )

    target = parser.add_mutually_exclusive_group()
    target.add_argument(
        "-w", "--crlf", dest="target", action="store_const", const="crlf",
        help="Convert to CRLF",
    )
    target.add_argument(
        "-u", "--lf", dest="target", action="store_const", const="lf",
        help="Convert to LF",
    )
    target.add_argument(
        "-m", "--cr", dest="target", action="store_const", const="cr",
        help="Convert to CR",
    )
    target.add_argument(
        "--format",
        dest="target",
        choices=["lf", "cr", "crlf"],
        help="Target line delimiter (same as --lf, --cr or --crlf)",
    )

    parser.add_argument(
        "-d",
        "--detect",
        action="store_true",
        help="Detect only and don't perform conversion",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging"
    )
    parser.add_argument(
        "--log-file", default=None, help="Also append log records to this file"
    )
    parser.add_argument(
        "--no-progress", action="store_true", help="Hide the progress bar"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"eolforge v{__version__}",
        help="Show program version and exit",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        args = build_parser().parse_args(argv)
        configure_logging(args.verbose, args.log_file)

        if args.target is None:
            logger.error(
                "No target delimiter is specified, use '--lf', '--crlf' or '--cr'."
            )
            return 1
        target = Delimiter.from_label(args.target)

        logger.info("eolforge v%s - Line Delimiter Normalizer", __version__)
        logger.info("Patterns: %s", " ".join(args.patterns))
        logger.info("Target line delimiter: %s", target.label)
        logger.info("Mode: %s", "detect" if args.detect else "convert")

        start_time = time.time()

        files, pattern_failures = collect_files(args.patterns)
        if not files:
            logger.warning("No matching files found.")
            return 1 if pattern_failures else 0

        logger.info("Found %d files to process.", len(files))

        summary = process_files(
            files, target, detect_only=args.detect, show_progress=not args.no_progress
        )

        logger.info(
            "Done! Processed %d files in %s.",
            len(files),
            format_duration(time.time() - start_time),
        )
        return 1 if pattern_failures or summary.errors else 0
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user.")
        return 130
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.error("An unexpected error occurred: %s", str(e))
        if logger.isEnabledFor(logging.DEBUG):
            import traceback  # pylint: disable=import-outside-toplevel

            logger.debug("Traceback: %s", traceback.format_exc())
        return 1


if __name__ == "__main__":
    sys.exit(main())
