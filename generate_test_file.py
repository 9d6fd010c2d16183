# /// script
# requires-python = ">=3.8"
# dependencies = [
#     "genutility[rich]",
#     "rich",
# ]
# ///
import errno
import logging
import os
import re
import sys
from argparse import ArgumentDefaultsHelpFormatter, ArgumentParser, ArgumentTypeError, Namespace
from contextlib import nullcontext
from pathlib import Path
from typing import Optional, Sequence

from genutility.rich import Progress
from rich.console import Console
from rich.highlighter import NullHighlighter
from rich.logging import RichHandler
from rich.progress import BarColumn, MofNCompleteColumn, TextColumn, TimeElapsedColumn
from rich.progress import Progress as RichProgress

logger = logging.getLogger(__name__)

DEFAULT_PATH = Path("data") / "test.dat"
DEFAULT_FILL = 0x41  # 'A'
DEFAULT_CHUNK_SIZE = 1024**2

USAGE_MSG = "USAGE: {prog} <M bytes>"
OPEN_ERROR_MSG = "file open error."
WRITE_ERROR_MSG = "file write error."

_int_scan = re.compile(r"[ \t\n\v\f\r]*([+-]?)(0[xX][0-9a-fA-F]+|0[0-7]*|[1-9][0-9]*)")


class FileOpenError(OSError):
    pass


class FileWriteError(OSError):
    pass


def parse_multiplier(text: str) -> int:
    """Scans an integer from the beginning of `text` like the `%i` conversion of scanf.
    Hexadecimal (`0x`) and octal (leading `0`) prefixes are honored and trailing garbage is ignored.
    Returns 0 if `text` doesn't start with a number.
    """

    m = _int_scan.match(text)
    if not m:
        return 0

    sign, digits = m.groups()
    if digits[:2] in ("0x", "0X"):
        value = int(digits[2:], 16)
    elif digits.startswith("0"):
        value = int(digits, 8)
    else:
        value = int(digits, 10)

    if sign == "-":
        return -value
    return value


def make_fill_buffer(chunk_size: int = DEFAULT_CHUNK_SIZE, fill: int = DEFAULT_FILL) -> bytes:
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, not {chunk_size}")
    if not 0 <= fill <= 0xFF:
        raise ValueError(f"fill must be a byte value, not {fill}")

    return bytes([fill]) * chunk_size


def generate_file(
    path: Path,
    multiplier: int,
    fill: int = DEFAULT_FILL,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    progress: Optional[Progress] = None,
) -> int:
    """Writes the fill buffer `multiplier` times to `path`, truncating any existing content.
    The parent directory of `path` is not created.
    Returns the number of bytes written.
    """

    data = make_fill_buffer(chunk_size, fill)
    count = max(multiplier, 0)
    total = count * chunk_size

    logger.info("Writing %d chunks of %d bytes (0x%02X) to `%s`", count, chunk_size, fill, path)

    try:
        fw = open(path, "wb")
    except OSError as e:
        raise FileOpenError(e.errno, e.strerror, os.fspath(path)) from e

    if progress is None:
        taskctx = nullcontext()
    else:
        taskctx = progress.task(total=total, description=f"Writing {Path(path).name}", transient=True)

    written = 0
    with fw, taskctx as task:
        for _i in range(count):
            try:
                n = fw.write(data)
            except OSError as e:
                raise FileWriteError(e.errno or errno.EIO, e.strerror, os.fspath(path)) from e

            if n != chunk_size:
                raise FileWriteError(errno.EIO, f"Short write of {n}/{chunk_size} bytes", os.fspath(path))

            written += n
            if task is not None:
                task.update(completed=written)

    logger.debug("Wrote %d bytes to `%s`", written, path)
    return written


def byte_value(s: str) -> int:
    try:
        value = int(s, 0)
    except ValueError:
        raise ArgumentTypeError(f"invalid byte value: {s}")

    if not 0 <= value <= 0xFF:
        raise ArgumentTypeError(f"byte value out of range 0-255: {s}")
    return value


def positive_int(s: str) -> int:
    try:
        value = int(s)
    except ValueError:
        raise ArgumentTypeError(f"invalid integer: {s}")

    if value <= 0:
        raise ArgumentTypeError(f"must be positive: {s}")
    return value


def get_parser() -> ArgumentParser:
    parser = ArgumentParser(
        description="Create a test data file filled with a constant byte value.",
        formatter_class=ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "size", nargs="?", default=None, help="Number of chunks to write. Each chunk is `--chunk-size` bytes (1 MiB)."
    )
    parser.add_argument(
        "--path", type=Path, default=DEFAULT_PATH, help="Output file. The parent directory must already exist."
    )
    parser.add_argument("--fill", type=byte_value, default=DEFAULT_FILL, help="Fill byte value, eg. 65 or 0x41")
    parser.add_argument("--chunk-size", type=positive_int, default=DEFAULT_CHUNK_SIZE, help="Size of one chunk in bytes")
    parser.add_argument("-p", "--progress", action="store_true", help="Show progress bar")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Show more output")
    return parser


def parse_args(parser: ArgumentParser, argv: Optional[Sequence[str]] = None) -> Namespace:
    """Like `parser.parse_args`, but a size starting with `-` which argparse mistakes for an option
    (eg. `-1abc` or `-0x10`) is still used as size. Additional positional arguments are ignored.
    """

    args, rest = parser.parse_known_args(argv)
    if args.size is None and rest:
        args.size = rest.pop(0)

    unknown = [arg for arg in rest if arg.startswith("--")]
    if unknown:
        parser.error(f"unrecognized arguments: {' '.join(unknown)}")

    return args


def main(args: Namespace, prog: Optional[str] = None) -> int:
    if args.size is None:
        print(USAGE_MSG.format(prog=prog or os.path.basename(sys.argv[0])), file=sys.stderr)
        return 1

    multiplier = parse_multiplier(args.size)

    if args.progress:
        columns = [
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
        ]
        progressctx = RichProgress(*columns, console=Console(stderr=True))
    else:
        progressctx = nullcontext()

    try:
        with progressctx as p:
            progress = None if p is None else Progress(p)
            generate_file(args.path, multiplier, args.fill, args.chunk_size, progress)
    except FileOpenError as e:
        logger.debug("Opening failed: %s", e)
        print(OPEN_ERROR_MSG, file=sys.stderr)
        return e.errno or 1
    except OSError as e:
        logger.error("Writing failed: %s", e)
        print(WRITE_ERROR_MSG, file=sys.stderr)
        return e.errno or errno.EIO

    return 0


def setup_logging(level: int = logging.NOTSET) -> None:
    handler = RichHandler(
        console=Console(stderr=True), log_time_format="%Y-%m-%d %H-%M-%S%Z", highlighter=NullHighlighter()
    )
    logging.basicConfig(level=level, format="%(message)s", handlers=[handler])


def cli() -> None:
    parser = get_parser()
    args = parse_args(parser)

    if args.verbose == 0:
        setup_logging(logging.WARNING)
    elif args.verbose == 1:
        setup_logging(logging.INFO)
    else:
        setup_logging(logging.DEBUG)

    try:
        sys.exit(main(args, parser.prog))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user. Exiting.")
    except Exception:
        logger.exception("Generating file failed. Exiting.")
        sys.exit(1)


if __name__ == "__main__":
    cli()
