"""
Unit tests for the endpoint load test (llrt_check/perf/load_test.py)

HTTP is mocked at the requests.Session level.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from llrt_check.perf import load_test
from llrt_check.perf.load_test import (
    LatencyStats,
    LoadTestReport,
    api_gateway_endpoints,
    calculate_stats,
    format_report,
    parse_args,
    run_load_test,
)


def _session(side_effect=None):
    session = MagicMock(spec=requests.Session)
    response = MagicMock()
    response.status_code = 200
    if side_effect is None:
        session.get.return_value = response
    else:
        session.get.side_effect = side_effect
    return session


class TestCalculateStats:
    def test_basic_statistics(self):
        stats = calculate_stats([30.0, 10.0, 20.0])

        assert stats.min == 10.0
        assert stats.max == 30.0
        assert stats.avg == pytest.approx(20.0)
        assert stats.total == 3

    def test_percentiles_index_floor_of_n_times_q(self):
        times = [float(i) for i in range(1, 101)]

        stats = calculate_stats(times)

        # sorted[floor(100 * 0.95)] and sorted[floor(100 * 0.99)]
        assert stats.p95 == 96.0
        assert stats.p99 == 100.0

    def test_small_sample_clamped(self):
        stats = calculate_stats([5.0])
        assert stats.p95 == 5.0
        assert stats.p99 == 5.0

    def test_empty(self):
        assert calculate_stats([]) is None


class TestRunLoadTest:
    def test_request_counts(self):
        session = _session()

        report = run_load_test(
            "hello", "http://example.test/hello", total=25, concurrency=10, warmup=3, session=session
        )

        assert session.get.call_count == 28
        assert report.stats.total == 25
        assert report.errors == []

    def test_errors_counted(self):
        ok = MagicMock(status_code=200)
        calls = [ok] * 3 + [requests.ConnectionError("refused"), ok]
        session = _session(side_effect=calls)

        report = run_load_test("hello", "http://x", total=4, concurrency=2, warmup=1, session=session)

        assert report.stats.total == 3
        assert report.errors == ["refused"]

    def test_warmup_failures_ignored(self):
        ok = MagicMock(status_code=200)
        session = _session(side_effect=[requests.Timeout("slow"), ok, ok])

        report = run_load_test("hello", "http://x", total=2, concurrency=2, warmup=1, session=session)

        assert report.stats.total == 2
        assert report.errors == []

    def test_all_failed(self):
        session = _session(side_effect=requests.ConnectionError("down"))

        report = run_load_test("hello", "http://x", total=3, concurrency=3, warmup=0, session=session)

        assert report.stats is None
        assert len(report.errors) == 3


class TestFormatting:
    def test_format_report(self):
        report = LoadTestReport(
            name="hello",
            url="http://x",
            stats=LatencyStats(min=1, max=9, avg=5, p95=8, p99=9, total=10),
            errors=["boom"],
        )

        text = format_report(report)

        assert "Results for hello:" in text
        assert "95th percentile: 8.00ms" in text
        assert "Errors: 1" in text

    def test_format_report_no_successes(self):
        text = format_report(LoadTestReport(name="hello", url="http://x", stats=None))
        assert "No successful requests" in text

    def test_api_gateway_endpoints(self):
        assert api_gateway_endpoints("abc", "eu-west-1") == {
            "hello": "https://abc.execute-api.eu-west-1.amazonaws.com/hello",
            "goodbye": "https://abc.execute-api.eu-west-1.amazonaws.com/goodbye",
        }


class TestCommandLine:
    def test_endpoint_argument(self):
        args = parse_args(["--endpoint", "hello=http://x/hello", "--total", "5"])
        assert args.endpoint == [("hello", "http://x/hello")]
        assert args.total == 5

    def test_requires_an_endpoint(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_rejects_malformed_endpoint(self):
        with pytest.raises(SystemExit):
            parse_args(["--endpoint", "no-equals-sign"])

    def test_rejects_zero_concurrency(self):
        with pytest.raises(SystemExit):
            parse_args(["--api-id", "abc", "--concurrency", "0"])

    def test_main_runs_each_endpoint(self, capsys):
        report = LoadTestReport(
            name="x", url="u", stats=LatencyStats(min=1, max=1, avg=1, p95=1, p99=1, total=1)
        )
        with patch.object(load_test, "run_load_test", return_value=report) as run:
            exit_code = load_test.main(["--api-id", "abc", "--warmup", "0"])

        assert exit_code == 0
        assert [c.args[0] for c in run.call_args_list] == ["hello", "goodbye"]
        assert "Starting performance tests..." in capsys.readouterr().out

    def test_main_fails_when_no_request_succeeds(self):
        report = LoadTestReport(name="x", url="u", stats=None, errors=["down"])
        with patch.object(load_test, "run_load_test", return_value=report):
            assert load_test.main(["--endpoint", "a=http://x"]) == 1
