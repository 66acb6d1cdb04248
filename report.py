import csv
import logging
import os
import sys
from typing import Any, Dict, Iterable, List, TextIO

from config import CSV_FIELDS
from durations import format_duration
from metrics import RequestOutcome, RunResult, Summary

logger = logging.getLogger(__name__)


def outcome_row(outcome: RequestOutcome) -> Dict[str, Any]:
    result = outcome.result
    return {
        "index": outcome.index,
        "warmup": "true" if outcome.is_warmup else "false",
        "started_at": outcome.started_at.isoformat(),
        "wait_ms": round(outcome.waited_for * 1000, 3),
        "latency_ms": round(outcome.latency * 1000, 3),
        "status": result.status_code if result.ok else "",
        "error_kind": "" if result.ok else result.kind.value,
        "error": "" if result.ok else result.message,
    }


def write_rows(stream: TextIO, outcomes: Iterable[RequestOutcome], header: bool = True) -> int:
    writer = csv.DictWriter(stream, fieldnames=CSV_FIELDS)
    if header:
        writer.writeheader()
    count = 0
    for outcome in outcomes:
        writer.writerow(outcome_row(outcome))
        count += 1
    return count


def write_csv(path: str, run: RunResult) -> int:
    """
    Writes one row per outcome, warmup included. Appends when the file
    exists (header only on a new file); '-' writes to stdout.
    """
    if path == "-":
        return write_rows(sys.stdout, run.outcomes)

    parent = os.path.dirname(path)
    if parent and not os.path.exists(parent):
        os.makedirs(parent)
    file_exists = os.path.isfile(path) and os.path.getsize(path) > 0
    with open(path, 'a', newline='') as f:
        count = write_rows(f, run.outcomes, header=not file_exists)
    logger.info(f"{'Appended' if file_exists else 'Wrote'} {count} results to {path}")
    return count


def format_summary(summary: Summary) -> str:
    lines: List[str] = []
    header = f"Results of {summary.measured} probes"
    if summary.warmup:
        header += f" ({summary.warmup} warmup excluded)"
    lines.append(header + ":")
    lines.append("")

    if not summary.has_latencies:
        lines.append("no result values")
    else:
        lines.extend([
            f"Min:         {format_duration(summary.min_s)}\t({summary.min_status})",
            f"Max:         {format_duration(summary.max_s)}\t({summary.max_status})",
            f"First:       {format_duration(summary.first_s)}\t({summary.first_status})",
            f"Average:     {format_duration(summary.avg_s)}",
            f"Std. Dev.:   {format_duration(summary.stddev_s)}",
        ])
        for pct, value in summary.percentiles_s.items():
            lines.append(f"{f'{pct}th %ile.:':<13}{format_duration(value)}")
        lines.append(f"Total:       {format_duration(summary.sum_s)}")

    lines.append("")
    lines.append(f"Succeeded:   {summary.successes}")
    lines.append(f"Failed:      {summary.failures}")
    for kind, count in summary.failure_counts.items():
        lines.append(f"  {kind}: {count}")
    if summary.status_counts:
        lines.append("Status codes: " + ", ".join(f"{code}={count}" for code, count in summary.status_counts.items()))
    lines.append(f"Elapsed:     {format_duration(summary.elapsed_s)}")
    lines.append(f"Throughput:  {summary.throughput_rps:.2f} req/s")
    return "\n".join(lines)
