import csv
import io
import sys
import os
from datetime import datetime, timezone
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config import CSV_FIELDS, RunConfig
from http_client import ErrorKind
from metrics import Failure, RequestOutcome, RunResult, Success, summarize
from report import format_summary, outcome_row, write_csv, write_rows
from wait_policy import NoWait

NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_run(results, warmup_count=0) -> RunResult:
    config = RunConfig(url="http://localhost/", method="GET", headers=(), body=None,
                       total_count=len(results), parallelism=1, warmup_count=warmup_count, wait=NoWait())
    outcomes = tuple(
        RequestOutcome(index=i, is_warmup=i < warmup_count, started_at=NOW, waited_for=0.005,
                       latency=0.0123456, result=result)
        for i, result in enumerate(results)
    )
    return RunResult(config=config, outcomes=outcomes, started_at=NOW, elapsed_s=0.5)


class TestCsv:
    def test_success_row(self):
        run = make_run([Success(200, 42)], warmup_count=1)
        row = outcome_row(run.outcomes[0])
        assert row == {
            "index": 0, "warmup": "true", "started_at": "2024-01-01T12:00:00+00:00",
            "wait_ms": 5.0, "latency_ms": 12.346, "status": 200, "error_kind": "", "error": "",
        }

    def test_failure_row(self):
        run = make_run([Failure(ErrorKind.TIMEOUT, "TimeoutError")])
        row = outcome_row(run.outcomes[0])
        assert row["warmup"] == "false"
        assert row["status"] == ""
        assert row["error_kind"] == "Timeout"
        assert row["error"] == "TimeoutError"

    def test_rows_include_warmup_in_index_order(self):
        run = make_run([Success(200, 1), Success(200, 1), Failure(ErrorKind.IO, "reset")], warmup_count=1)
        stream = io.StringIO()
        assert write_rows(stream, run.outcomes) == 3
        rows = list(csv.DictReader(io.StringIO(stream.getvalue())))
        assert [r["index"] for r in rows] == ["0", "1", "2"]
        assert [r["warmup"] for r in rows] == ["true", "false", "false"]
        assert list(rows[0].keys()) == CSV_FIELDS

    def test_write_csv_creates_parents_and_appends(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "results.csv"
        run = make_run([Success(200, 1), Success(201, 1)])

        assert write_csv(str(path), run) == 2
        assert write_csv(str(path), run) == 2

        lines = path.read_text().splitlines()
        assert lines[0] == ",".join(CSV_FIELDS)
        assert len(lines) == 5  # One header, two runs of two rows
        assert sum(1 for line in lines if line.startswith("index,")) == 1

    def test_write_csv_to_stdout(self, capsys):
        write_csv("-", make_run([Success(204, 0)]))
        out = capsys.readouterr().out
        assert out.splitlines()[0] == ",".join(CSV_FIELDS)
        assert ",204," in out


class TestSummaryText:
    def test_lists_statistics(self):
        text = format_summary(summarize(make_run([Success(200, 1)] * 4, warmup_count=1)))
        assert "Results of 3 probes (1 warmup excluded):" in text
        for label in ("Min:", "Max:", "First:", "Average:", "Std. Dev.:", "90th %ile.:",
                      "95th %ile.:", "99th %ile.:", "Total:", "Throughput:"):
            assert label in text
        assert "12.3456ms" in text
        assert "Status codes: 200=3" in text

    def test_no_result_values(self):
        text = format_summary(summarize(make_run([Failure(ErrorKind.CONNECT_FAILED, "refused")] * 2)))
        assert "no result values" in text
        assert "Failed:      2" in text
        assert "ConnectFailed: 2" in text
