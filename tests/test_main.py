import importlib
import json

import pytest

from crudbench.config import Operation

cli = importlib.import_module("crudbench.main")


class TestParseArgs:
    def test_environment_defaults(self, monkeypatch):
        monkeypatch.setenv("JIT_API_URL", "http://jit:8080")
        monkeypatch.setenv("AOT_API_URL", "http://aot:8080")
        monkeypatch.setenv("BENCHMARK_RATE", "50")
        monkeypatch.setenv("BENCHMARK_OPERATIONS", "READ,DELETE")
        args = cli.parse_args([])

        plan = cli.build_plan(args)
        variants = cli.build_variants(args)

        assert [v.base_url for v in variants] == ["http://jit:8080", "http://aot:8080"]
        assert [v.label for v in variants] == ["JIT", "AOT"]
        assert plan.rate == 50
        assert plan.operations == (Operation.READ, Operation.DELETE)

    def test_flags_override_environment(self, monkeypatch):
        monkeypatch.setenv("BENCHMARK_DURATION_SECONDS", "30")
        args = cli.parse_args(["--duration", "2", "--dataset-sizes", "5,10", "--no-warmup"])
        plan = cli.build_plan(args)
        assert plan.duration_seconds == 2.0
        assert plan.dataset_sizes == (5, 10)
        assert plan.warmup is False

    @pytest.mark.parametrize(
        "name",
        [
            "BENCHMARK_RATE",
            "BENCHMARK_DURATION_SECONDS",
            "BENCHMARK_COOLDOWN_SECONDS",
            "BENCHMARK_WARMUP_PAUSE_SECONDS",
            "BENCHMARK_REQUEST_TIMEOUT",
        ],
    )
    def test_non_numeric_environment_value_is_a_usage_error(self, monkeypatch, capsys, name):
        monkeypatch.setenv(name, "fast")
        with pytest.raises(SystemExit) as excinfo:
            cli.parse_args([])
        assert excinfo.value.code == 2
        assert "invalid" in capsys.readouterr().err

    def test_flag_overrides_malformed_environment_value(self, monkeypatch):
        monkeypatch.setenv("BENCHMARK_RATE", "fast")
        args = cli.parse_args(["--rate", "25"])
        assert args.rate == 25


class TestMain:
    def test_dry_run_prints_plan(self, capsys, tmp_path):
        code = cli.main(
            [
                "--dry-run",
                "--dataset-sizes",
                "1000",
                "--operations",
                "READ,CREATE",
                "--output-dir",
                str(tmp_path),
            ]
        )
        out = capsys.readouterr().out
        assert code == 0
        assert "Sweep: 4 scenarios" in out
        assert "JIT/READ/1000" in out
        assert "AOT/CREATE/1000" in out
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.parametrize(
        "argv",
        [
            ["--operations", "READ,MERGE"],
            ["--rate", "0"],
            ["--duration", "-1"],
            ["--jit-url", ""],
        ],
    )
    def test_configuration_errors_exit_with_2(self, argv, tmp_path):
        assert cli.main(argv + ["--output-dir", str(tmp_path)]) == 2

    def test_full_run_writes_artifacts(
        self, crud_server, second_crud_server, tmp_path, monkeypatch
    ):
        monkeypatch.setattr(cli, "install_signal_handlers", lambda stop_event: None)
        output_dir = tmp_path / "out"
        code = cli.main(
            [
                "--jit-url",
                crud_server.url,
                "--aot-url",
                second_crud_server.url,
                "--dataset-sizes",
                "1000",
                "--operations",
                "READ",
                "--duration",
                "0.3",
                "--rate",
                "20",
                "--cooldown",
                "0",
                "--warmup-pause",
                "0",
                "--output-dir",
                str(output_dir),
                "--csv",
            ]
        )

        assert code == 0
        artifacts = sorted(output_dir.glob("benchmark-results-*.json"))
        assert len(artifacts) == 1
        records = json.loads(artifacts[0].read_text(encoding="utf-8"))
        assert [(r["apiType"], r["operation"], r["datasetSize"]) for r in records] == [
            ("JIT", "READ", 1000),
            ("AOT", "READ", 1000),
        ]
        assert artifacts[0].with_suffix(".csv").exists()
        assert len(list(output_dir.glob("*-comparison.csv"))) == 1

    def test_all_scenarios_failing_exits_nonzero(self, unreachable_url, tmp_path, monkeypatch):
        monkeypatch.setattr(cli, "install_signal_handlers", lambda stop_event: None)
        code = cli.main(
            [
                "--jit-url",
                unreachable_url,
                "--aot-url",
                unreachable_url,
                "--dataset-sizes",
                "1000",
                "--operations",
                "READ",
                "--duration",
                "0.2",
                "--rate",
                "10",
                "--cooldown",
                "0",
                "--timeout",
                "1",
                "--no-warmup",
                "--output-dir",
                str(tmp_path),
            ]
        )
        assert code == 1
        artifact = next(tmp_path.glob("benchmark-results-*.json"))
        assert json.loads(artifact.read_text(encoding="utf-8")) == []

    def test_unwritable_output_dir_exits_nonzero(self, crud_server, tmp_path, monkeypatch):
        monkeypatch.setattr(cli, "install_signal_handlers", lambda stop_event: None)
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        code = cli.main(
            [
                "--jit-url",
                crud_server.url,
                "--aot-url",
                crud_server.url,
                "--dataset-sizes",
                "1000",
                "--operations",
                "READ",
                "--duration",
                "0.2",
                "--rate",
                "10",
                "--cooldown",
                "0",
                "--no-warmup",
                "--csv",
                "--output-dir",
                str(blocker / "out"),
            ]
        )
        assert code == 1
        assert blocker.read_text(encoding="utf-8") == "not a directory"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["blocker"]
