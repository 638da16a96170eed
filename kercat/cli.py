import argparse
import sys
from typing import List, Optional

from kercat.config import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_CONNECT_HOST,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_LISTEN_HOST,
    DEFAULT_LISTEN_HOST_V6,
    DEFAULT_PORT,
    Config,
    EofPolicy,
    IpFamily,
    Mode,
)
from kercat.log import configure_logging
from kercat.session import run_session

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

_ESCAPES = {"\\n": b"\n", "\\r": b"\r", "\\t": b"\t", "\\0": b"\0"}


def parse_delimiter(text: str) -> bytes:
    if text in _ESCAPES:
        return _ESCAPES[text]
    data = text.encode("utf-8")
    if len(data) != 1:
        raise argparse.ArgumentTypeError(f"delimiter must be a single byte, got {text!r}")
    return data


def positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {text!r}")
    if value <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return value


def positive_float(text: str) -> float:
    try:
        value = float(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number, got {text!r}")
    if value <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive number, got {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    # -h is the host, so help is --help only
    parser = argparse.ArgumentParser(
        prog="kercat",
        description="Pipe bytes between stdin/stdout and a TCP peer.",
        add_help=False,
    )
    parser.add_argument("--help", action="help", help="Show this help message and exit.")
    parser.add_argument("-l", "--listen", action="store_true",
                        help="'Server mode'; listens for data rather than sending it.")
    parser.add_argument("-h", "--host", metavar="HOST", help="The host address to connect to or bind.")
    parser.add_argument("-p", "--port", metavar="PORTS",
                        help="Port, range or list, e.g. 80, 80-90 or 80,443,8000-8010.")
    parser.add_argument("-I", "--in-buffer", metavar="SIZE", type=positive_int, default=DEFAULT_BUFFER_SIZE,
                        help="Size of each network read.")
    parser.add_argument("-O", "--out-buffer", metavar="SIZE", type=positive_int, default=DEFAULT_BUFFER_SIZE,
                        help="Size of each local input read.")
    parser.add_argument("-F", "--ignore-eof", action="store_true",
                        help="Do not close the connection when local input ends.")
    parser.add_argument("-k", "--keep-listening", action="store_true",
                        help="Accept another peer after one disconnects (-l mode only).")
    family = parser.add_mutually_exclusive_group()
    family.add_argument("-4", "--ipv4-only", action="store_true", help="Only use IPv4.")
    family.add_argument("-6", "--ipv6-only", action="store_true", help="Only use IPv6.")
    parser.add_argument("-n", "--no-dns", action="store_true",
                        help="Numeric addresses only, never do name resolution.")
    parser.add_argument("-w", "--timeout", metavar="SECONDS", type=positive_float, default=DEFAULT_CONNECT_TIMEOUT,
                        help="Connect timeout per candidate address.")
    parser.add_argument("-d", "--delimiter", metavar="CHAR", type=parse_delimiter, default=b"\n",
                        help="Frame delimiter for received data (default \\n).")
    parser.add_argument("--raw", action="store_true", help="Pass received data through unframed.")
    parser.add_argument("--log", metavar="FILE", dest="log_file", help="Record all activity into FILE.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log to stderr, at debug level.")
    parser.add_argument("extra", nargs="*", metavar="[HOST] PORT", help=argparse.SUPPRESS)
    return parser


def config_from_args(args: argparse.Namespace, parser: argparse.ArgumentParser) -> Config:
    if len(args.extra) > 2:
        parser.error(f"unexpected arguments: {' '.join(args.extra[2:])}")
    if args.keep_listening and not args.listen:
        parser.error("-k/--keep-listening requires -l/--listen")

    family = IpFamily.ANY
    if args.ipv4_only:
        family = IpFamily.V4
    elif args.ipv6_only:
        family = IpFamily.V6

    host = args.host
    port = None
    if args.listen:
        if len(args.extra) > 1:
            parser.error("listen mode takes a single PORT argument")
        port = args.extra[0] if args.extra else None
    elif len(args.extra) == 2:
        host = args.extra[0]
        port = args.extra[1]
    elif args.extra:
        port = args.extra[0]

    if args.port:
        port = args.port
    if host is None:
        if not args.listen:
            host = DEFAULT_CONNECT_HOST
        elif family is IpFamily.V6:
            host = DEFAULT_LISTEN_HOST_V6
        else:
            host = DEFAULT_LISTEN_HOST

    return Config(
        mode=Mode.LISTEN if args.listen else Mode.CONNECT,
        family=family,
        host=host,
        ports=port or DEFAULT_PORT,
        input_buffer_size=args.in_buffer,
        output_buffer_size=args.out_buffer,
        eof_policy=EofPolicy.IGNORE if args.ignore_eof else EofPolicy.CLOSE,
        keep_listening=args.keep_listening,
        bypass_dns=args.no_dns,
        delimiter=None if args.raw else args.delimiter,
        connect_timeout=args.timeout,
        log_file=args.log_file,
        verbose=args.verbose,
    )


def parse_args(argv: Optional[List[str]] = None) -> Config:
    parser = build_parser()
    args = parser.parse_args(argv)
    return config_from_args(args, parser)


def main(argv: Optional[List[str]] = None) -> int:
    config = parse_args(argv)

    try:
        configure_logging(config.log_file, config.verbose)
    except OSError as e:
        print(f"kercat: cannot open log file: {e}", file=sys.stderr)
        return EXIT_FAILURE

    try:
        result = run_session(config)
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED

    if not result.ok:
        print(f"kercat: {result.error}", file=sys.stderr)
        return EXIT_FAILURE
    return EXIT_OK
