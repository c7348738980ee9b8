"""CLI tests covering argument parsing, dispatch, and subcommand behavior.

Log setup is always stubbed so tests do not reconfigure the root logger.
"""

from __future__ import annotations

import builtins as py_builtins
import importlib
import json
import logging
from io import StringIO
from pathlib import Path
from types import SimpleNamespace  # for narrow use in _invoke_main helper
from unittest.mock import patch

import pytest
import yaml


def _invoke_main(argv: list[str], *, stub_subcommand: bool = False):
    """Invoke demandgen.cli.main with patches applied.

    Args:
        argv: Arguments excluding program name.
        stub_subcommand: If True, replaces subcommands (build/validate/info)
            with a no-op function that records it was called.

    Returns:
        Namespace with: code (int), stdout (str), called (str|None), level (int|None).
    """
    import demandgen.cli as cli

    importlib.reload(cli)

    called: dict[str, bool] = {"build": False, "validate": False, "info": False}
    level_holder: dict[str, int | None] = {"level": None}

    patchers = [
        patch(
            "demandgen.log_config.set_global_log_level",
            side_effect=lambda lvl: level_holder.__setitem__("level", lvl),
        )
    ]

    if stub_subcommand:
        patchers.extend(
            patch.object(
                cli,
                f"{name}_command",
                side_effect=lambda a, name=name: called.__setitem__(name, True),
            )
            for name in called
        )

    for p in patchers:
        p.start()

    out = SimpleNamespace(code=0, stdout="", called=None, level=None)
    saved_print = py_builtins.print
    try:
        with (
            patch("sys.stdout", new_callable=StringIO) as buf,
            patch("sys.argv", ["demandgen"] + argv),
        ):
            try:
                cli.main()
            except SystemExit as e:
                out.code = int(getattr(e, "code", 0) or 0)
            out.stdout = buf.getvalue()
            out.level = level_holder["level"]
            for name, was_called in called.items():
                if was_called:
                    out.called = name
                    break
    finally:
        # Restore global print in case --quiet modified it
        py_builtins.print = saved_print
        for p in reversed(patchers):
            p.stop()

    return out


def test_no_args_shows_help_and_exits_nonzero():
    res = _invoke_main([])
    assert res.code == 1
    assert "Available commands" in res.stdout


def test_verbose_flag_sets_debug_level_and_dispatches_info():
    res = _invoke_main(["-v", "info", "config.yml"], stub_subcommand=True)
    assert res.called == "info"
    assert res.level == logging.DEBUG


def test_default_log_level_is_info():
    res = _invoke_main(["info", "config.yml"], stub_subcommand=True)
    assert res.level == logging.INFO


def test_subcommand_dispatch():
    for argv, expected in (
        (["build"], "build"),
        (["validate", "demand_data.json"], "validate"),
        (["info"], "info"),
    ):
        res = _invoke_main(argv, stub_subcommand=True)
        assert res.called == expected


def test_quiet_suppresses_print_output(tmp_path: Path):
    res = _invoke_main(["--quiet", "info", str(tmp_path / "missing.yml")])
    assert res.code == 2
    assert res.stdout == ""


def test_timer_context_manager_success_and_error():
    from demandgen.cli import Timer

    with patch("sys.stdout", new_callable=StringIO) as buf:
        with Timer("Unit test op"):
            pass
        assert "Unit test op" in buf.getvalue()

    with patch("sys.stdout", new_callable=StringIO) as buf:
        with pytest.raises(RuntimeError):
            with Timer("Failing op"):
                raise RuntimeError("boom")
        assert "failed after" in buf.getvalue()


def test_missing_config_exits_with_code_2(tmp_path: Path):
    res = _invoke_main(["build", str(tmp_path / "does_not_exist.yml")])
    assert res.code == 2
    assert "Configuration file not found" in res.stdout


def test_invalid_config_exits_with_code_2(invalid_config_file: Path):
    res = _invoke_main(["info", str(invalid_config_file)])
    assert res.code == 2
    assert "Configuration error" in res.stdout


def test_build_writes_demand_documents(temp_config_file: Path, tmp_path: Path):
    res = _invoke_main(["build", str(temp_config_file)])
    assert res.code == 0
    assert "SUCCESS" in res.stdout
    assert "Test Area (TST)" in res.stdout

    out = tmp_path / "out" / "TST" / "demand_data.json"
    doc = json.loads(out.read_text())
    assert {"points", "pops"} <= set(doc)


def test_build_output_override(temp_config_file: Path, tmp_path: Path):
    target = tmp_path / "custom"
    res = _invoke_main(["build", str(temp_config_file), "-o", str(target)])
    assert res.code == 0
    assert (target / "TST" / "demand_data.json").exists()


def test_build_reports_failed_area_and_exits_1(sample_config, tmp_path: Path):
    sample_config["areas"].append({"code": "BAD", "blocks": "missing.json"})
    path = tmp_path / "config.yml"
    path.write_text(yaml.dump(sample_config))

    res = _invoke_main(["build", str(path)])
    assert res.code == 1
    assert "✗ BAD (BAD)" in res.stdout
    assert "1 of 2 area(s) failed" in res.stdout
    # The healthy area is still written
    assert (tmp_path / "out" / "TST" / "demand_data.json").exists()


def test_build_with_no_areas(tmp_path: Path):
    path = tmp_path / "config.yml"
    path.write_text(yaml.dump({"areas": []}))
    res = _invoke_main(["build", str(path)])
    assert res.code == 0
    assert "No areas configured" in res.stdout


def test_validate_command(tmp_path: Path):
    good = {
        "points": [
            {"id": "H", "location": [0.0, 0.0], "jobs": 0, "residents": 10, "popIds": ["0"]},
            {"id": "W", "location": [0.0, 0.1], "jobs": 10, "residents": 0, "popIds": ["0"]},
        ],
        "pops": [
            {"id": "0", "residenceId": "H", "jobId": "W", "size": 10, "drivingDistance": 11119, "drivingSeconds": 1334},
        ],
    }
    path = tmp_path / "demand_data.json"
    path.write_text(json.dumps(good))
    res = _invoke_main(["validate", str(path)])
    assert res.code == 0
    assert "validation passed" in res.stdout

    res = _invoke_main(["validate", str(path), "--min-flow-size", "20"])
    assert res.code == 3
    assert "pops smaller than 20" in res.stdout

    good["pops"][0]["jobId"] = "X"
    path.write_text(json.dumps(good))
    res = _invoke_main(["validate", str(path)])
    assert res.code == 3

    res = _invoke_main(["validate", str(tmp_path / "missing.json")])
    assert res.code == 3


def test_info_shows_summary_and_data_availability(temp_config_file: Path):
    res = _invoke_main(["info", str(temp_config_file)])
    assert res.code == 0
    assert "DEMAND GENERATOR CONFIGURATION" in res.stdout
    assert "Data Availability" in res.stdout
    assert "blocks: ✅" in res.stdout
    assert "jobs: - (not configured)" in res.stdout
    assert "download required" not in res.stdout


def test_info_flags_missing_block_records(tmp_path: Path):
    path = tmp_path / "config.yml"
    path.write_text(yaml.dump({"areas": [{"code": "X", "blocks": "nope.json"}]}))
    res = _invoke_main(["info", str(path)])
    assert "blocks: ❌" in res.stdout
    assert "download required" in res.stdout
