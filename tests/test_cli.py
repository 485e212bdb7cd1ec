"""测试命令行入口。"""

from __future__ import annotations

from pathlib import Path

from PIL import Image
from typer.testing import CliRunner

from image_squeeze.cli.main import app

runner = CliRunner()


def test_cli_processes_directory_and_writes_report(tmp_path: Path) -> None:
    source = tmp_path / "assets"
    source.mkdir()
    Image.new("RGB", (32, 32), "blue").save(source / "icon.png")
    report = tmp_path / "report.csv"

    result = runner.invoke(app, ["run", str(source), "--workers", "1", "--report", str(report)])

    assert result.exit_code == 0, result.output
    assert "输出 1 个文件" in result.output
    assert report.exists()


def test_cli_reads_preprocessor_options_from_environment(tmp_path: Path) -> None:
    Image.new("RGB", (40, 20), "green").save(tmp_path / "banner.png")

    result = runner.invoke(app, ["run", str(tmp_path)], env={"INPUT_WORKERS": "1", "INPUT_RESIZE": "{width: 20}"})

    assert result.exit_code == 0, result.output
    with Image.open(tmp_path / "banner.png") as processed:
        assert processed.size == (20, 10)


def test_cli_rejects_malformed_json5(tmp_path: Path) -> None:
    result = runner.invoke(app, ["run", str(tmp_path), "--quant", "{numColors: "])

    assert result.exit_code == 2


def test_cli_rejects_non_positive_workers(tmp_path: Path) -> None:
    result = runner.invoke(app, ["run", str(tmp_path), "--workers", "0"])

    assert result.exit_code == 2


def test_run_is_a_named_subcommand(tmp_path: Path) -> None:
    Image.new("RGB", (8, 8), "red").save(tmp_path / "dot.png")

    result = runner.invoke(app, [str(tmp_path)])

    assert result.exit_code != 0
    assert (tmp_path / "dot.png").exists()
