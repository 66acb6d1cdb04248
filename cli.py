"""
rush: a tiny HTTP benchmarking and performance testing tool.

    rush https://example.com -n 200 -p 8 -W 20 -w 10ms..50ms -o results/run.csv
"""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional

import config
from config import ConfigError, RunConfig
from durations import parse_duration
from metrics import summarize
from report import format_summary, write_csv
from request import build_request_template
from scheduler import run_load
from wait_policy import wait_policy_from_string

logger = logging.getLogger()  # Root logger

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_OUTPUT_ERROR = 1


def setup_logging(level: int = config.LOG_LEVEL, log_file: Optional[str] = None):
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='w'))
    logging.basicConfig(level=level, format=config.LOG_FORMAT, handlers=handlers, force=True)


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rush", description="A tiny HTTP benchmarking and performance testing tool.")
    parser.add_argument("url", help="The URL to be requested")
    parser.add_argument("-X", "--method", default=config.DEFAULT_METHOD, help="The HTTP method to be used")
    parser.add_argument("-H", "--header", action="append", default=[],
                        help="An HTTP header sent with every request; format is 'key: value'. Repeatable")
    parser.add_argument("-b", "--body", help="The body content to be sent with the request")
    parser.add_argument("-f", "--body-file",
                        help="Reads the file and uses its contents as body; overrides --body if both are set")
    parser.add_argument("-c", "-n", "--count", type=positive_int, default=config.DEFAULT_COUNT,
                        help="The amount of requests which will be sent")
    parser.add_argument("-p", "--parallel", type=positive_int, default=config.DEFAULT_PARALLEL,
                        help="The maximum amount of requests in flight at a given time")
    parser.add_argument("-W", "--warmup", type=non_negative_int, default=config.DEFAULT_WARMUP,
                        help="The first N dispatched requests are sent but excluded from the statistics")
    parser.add_argument("-w", "--wait",
                        help="A duration awaited before each request is sent; pass a range "
                             "('from..to', e.g. '10ms..20ms') to pick a random duration per request")
    parser.add_argument("-k", "--insecure", action="store_true", help="Do not verify TLS certificates")
    parser.add_argument("-t", "--timeout", default=f"{config.REQUEST_TIMEOUT_SECONDS:g}s",
                        help="Per-request timeout, e.g. '5s' or '500ms'")
    parser.add_argument("-o", "--output",
                        help="Writes the result of each request as CSV to the given file, appending if it "
                             "exists; '-' writes CSV to stdout instead of the summary")
    parser.add_argument("--seed", type=int, help="Seed for the random wait durations")
    parser.add_argument("--log-file", help="Also write log output to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every request")
    return parser


def config_from_args(args: argparse.Namespace) -> RunConfig:
    template = build_request_template(args.url, args.method, args.header, args.body, args.body_file)
    return config.validate_run_config(RunConfig(
        url=template.url,
        method=template.method,
        headers=template.headers,
        body=template.body,
        total_count=args.count,
        parallelism=args.parallel,
        warmup_count=args.warmup,
        wait=wait_policy_from_string(args.wait),
        insecure_tls=args.insecure,
        timeout_s=parse_duration(args.timeout),
    ))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else config.LOG_LEVEL, args.log_file)

    try:
        run_config = config_from_args(args)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG_ERROR

    result = asyncio.run(run_load(run_config, seed=args.seed))

    if args.output:
        try:
            write_csv(args.output, result)
        except OSError as e:
            logger.error(f"Cannot write results to {args.output}: {e}")
            return EXIT_OUTPUT_ERROR
    if args.output != "-":
        print(format_summary(summarize(result)))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
