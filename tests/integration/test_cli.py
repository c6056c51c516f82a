"""
Integration tests for the command-line runner (no completion requests).
"""

import json

import pytest

from negotiation_eval.cli import _parse_date, build_parser, main


def _records(tmp_path):
    rows = [
        {
            "id": "row_1",
            "call_id": "vapi_1",
            "vendor_name": "Sharma Cabs",
            "vendor_phone": "9811111111",
            "date_time": "2024-03-04T09:00:00Z",
            "duration": 80,
            "status": "completed",
            "quoted_price": 1200,
            "negotiated_price": 1050,
        },
        {
            "id": "row_2",
            "call_id": "vapi_2",
            "vendor_name": "Gupta Travels",
            "vendor_phone": "9822222222",
            "date_time": "2024-03-20T18:30:00Z",
            "duration": 0,
            "status": "no_answer",
        },
    ]
    path = tmp_path / "calls.json"
    path.write_text(json.dumps(rows), encoding="utf-8")
    return path


class TestParser:
    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_metrics_defaults(self, tmp_path):
        args = build_parser().parse_args(["metrics", str(tmp_path / "calls.json")])

        assert args.command == "metrics"
        assert args.data == "all"
        assert args.analyze is False
        assert args.period is None

    def test_end_date_covers_whole_day(self):
        end = _parse_date("2024-03-10", end_of_day=True)

        assert (end.hour, end.minute) == (23, 59)
        assert end.tzinfo is not None
        assert _parse_date(None) is None


class TestMetricsCommand:
    """metrics and runs subcommands over a local call-record file."""

    def test_report(self, tmp_path, capsys):
        code = main(["--log-level", "WARNING", "metrics", str(_records(tmp_path))])

        assert code == 0
        assert "Negotiation Bot Eval Report" in capsys.readouterr().out

    def test_save_then_list(self, tmp_path, capsys):
        store = tmp_path / "runs.json"
        calls = _records(tmp_path)

        assert main(["--log-level", "WARNING", "metrics", str(calls), "--save", "--notes", "first", "--store", str(store)]) == 0
        assert main(["--log-level", "WARNING", "runs", "--store", str(store)]) == 0

        rows = json.loads(store.read_text(encoding="utf-8"))
        assert len(rows) == 1
        assert rows[0]["notes"] == "first"
        assert rows[0]["total_calls"] == 2
        assert rows[0]["quote_obtained_rate"] == 50
        assert "Eval Runs" in capsys.readouterr().out

    def test_date_window(self, tmp_path):
        store = tmp_path / "runs.json"

        main([
            "--log-level", "WARNING", "metrics", str(_records(tmp_path)),
            "--start", "2024-03-01", "--end", "2024-03-10", "--save", "--store", str(store),
        ])

        row = json.loads(store.read_text(encoding="utf-8"))[0]
        assert row["total_calls"] == 1
        assert json.loads(row["call_ids"]) == ["vapi_1"]
        assert json.loads(row["config"])["date_range"] is not None

    def test_open_ended_window_is_recorded(self, tmp_path):
        store = tmp_path / "runs.json"

        main([
            "--log-level", "WARNING", "metrics", str(_records(tmp_path)),
            "--start", "2024-03-05", "--save", "--store", str(store),
        ])

        row = json.loads(store.read_text(encoding="utf-8"))[0]
        date_range = json.loads(row["config"])["date_range"]
        assert json.loads(row["call_ids"]) == ["vapi_2"]
        assert date_range["start"].startswith("2024-03-05T00:00:00")
        assert date_range["end"] is None

    def test_show_unknown_run(self, tmp_path):
        assert main(["--log-level", "WARNING", "runs", "--show", "eval_missing", "--store", str(tmp_path / "runs.json")]) == 1
