from __future__ import annotations

import json
import os
from pathlib import Path

import pytest
from loguru import logger

from batch_image_editor.cli import _build_arg_parser, _build_cli_summary, main

from conftest import decode_rgba, encode, make_gradient


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch, tmp_path: Path):
    # 既定の設定ファイルを利用者の環境から切り離す
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("APPDATA", str(tmp_path / "config"))
    yield
    logger.remove()


@pytest.fixture
def input_dir(tmp_path: Path) -> Path:
    src = tmp_path / "in"
    src.mkdir()
    (src / "wide.png").write_bytes(encode(make_gradient((200, 100)), "PNG"))
    (src / "photo.jpg").write_bytes(encode(make_gradient((80, 60), mode="RGB"), "JPEG"))
    return src


def test_cli_parser_accepts_json_flag() -> None:
    parser = _build_arg_parser(["png", "jpg"])
    args = parser.parse_args(["a.png", "-d", "out", "--json", "-w", "100"])
    assert args.json is True
    assert args.keep_aspect is True
    assert args.width == 100
    assert args.format is None


def test_cli_parser_rejects_unknown_format() -> None:
    parser = _build_arg_parser(["png", "jpg"])
    with pytest.raises(SystemExit):
        parser.parse_args(["a.png", "-d", "out", "-f", "tiff"])


def test_build_cli_summary_shape() -> None:
    summary = _build_cli_summary(
        status="success",
        dest=Path("output"),
        total_files=10,
        processed_count=10,
        failed_files=[],
        output_format="jpg",
        width=1280,
        height=None,
        scale=None,
        elapsed_seconds=1.23456,
        outputs=[],
    )

    assert summary["status"] == "success"
    assert summary["dest"] == "output"
    assert summary["failed_count"] == 0
    assert summary["options"]["format"] == "jpg"
    assert summary["options"]["width"] == 1280
    assert summary["elapsed_seconds"] == 1.235
    assert summary["failed_files"] == []


def test_main_resizes_with_locked_aspect(input_dir: Path, tmp_path: Path, capsys) -> None:
    dest = tmp_path / "out"

    code = main(
        [str(input_dir / "wide.png"), str(input_dir / "photo.jpg"), "-d", str(dest), "-w", "50", "--json"]
    )

    assert code == 0
    with (dest / "wide_edited.png").open("rb") as fh:
        assert decode_rgba(fh.read()).size == (50, 25)
    assert decode_rgba((dest / "photo_edited.jpg").read_bytes()).size == (50, 38)

    summary = json.loads(capsys.readouterr().out)
    assert summary["status"] == "success"
    assert summary["processed_count"] == 2


def test_main_converts_format_and_scale(input_dir: Path, tmp_path: Path) -> None:
    dest = tmp_path / "out"

    code = main([str(input_dir / "wide.png"), "-d", str(dest), "-s", "25", "-f", "jpg", "--suffix", "_s"])

    assert code == 0
    data = (dest / "wide_s.jpg").read_bytes()
    assert data[:3] == b"\xff\xd8\xff"
    assert decode_rgba(data).size == (50, 25)


def test_main_reports_partial_failure(input_dir: Path, tmp_path: Path, capsys) -> None:
    broken = input_dir / "broken.png"
    broken.write_bytes(b"")
    dest = tmp_path / "out"

    code = main(
        [
            str(input_dir / "wide.png"),
            str(broken),
            str(input_dir / "missing.png"),
            "-d",
            str(dest),
            "-H",
            "10",
            "--json",
        ]
    )

    assert code == 1
    summary = json.loads(capsys.readouterr().out)
    assert summary["status"] == "partial"
    assert summary["total_files"] == 3
    assert summary["processed_count"] == 1
    assert sorted(item["name"] for item in summary["failed_files"]) == ["broken.png", "missing.png"]
    assert decode_rgba((dest / "wide_edited.png").read_bytes()).size == (20, 10)


def test_main_uses_config_file(input_dir: Path, tmp_path: Path) -> None:
    config_path = tmp_path / "engine.json"
    config_path.write_text(json.dumps({"default_output_format": "bmp"}), encoding="utf-8")
    dest = tmp_path / "out"

    code = main([str(input_dir / "wide.png"), "-d", str(dest), "--config", str(config_path)])

    assert code == 0
    assert (dest / "wide_edited.bmp").read_bytes()[:2] == b"BM"


def test_main_reports_failure_categories(input_dir: Path, tmp_path: Path, capsys) -> None:
    broken = input_dir / "broken.png"
    broken.write_bytes(b"\x89PNG\r\n\x1a\n")

    code = main([str(broken), str(input_dir / "missing.png"), "-d", str(tmp_path / "out"), "--json"])

    assert code == 1
    summary = json.loads(capsys.readouterr().out)
    assert summary["status"] == "failed"
    categories = {item["name"]: item["category"] for item in summary["failed_files"]}
    assert categories == {"broken.png": "corrupt_data", "missing.png": "unknown"}


def test_main_keeps_colliding_outputs_apart(input_dir: Path, tmp_path: Path, capsys) -> None:
    dest = tmp_path / "out"
    (input_dir / "wide.jpg").write_bytes(encode(make_gradient((60, 30), mode="RGB"), "JPEG"))

    code = main(
        [str(input_dir / "wide.png"), str(input_dir / "wide.jpg"), "-d", str(dest), "-f", "png", "--json"]
    )

    assert code == 0
    summary = json.loads(capsys.readouterr().out)
    assert [Path(p).name for p in summary["outputs"]] == ["wide_edited.png", "wide_edited_2.png"]
    assert decode_rgba((dest / "wide_edited.png").read_bytes()).size == (200, 100)
    assert decode_rgba((dest / "wide_edited_2.png").read_bytes()).size == (60, 30)


def test_main_loads_default_config_location(input_dir: Path, tmp_path: Path) -> None:
    if os.name == "nt":
        pytest.skip("Windows uses %APPDATA%/BatchImageEditor")
    config_path = tmp_path / "config" / "batchimageeditor" / "engine.json"
    config_path.parent.mkdir(parents=True)
    config_path.write_text(json.dumps({"default_output_format": "gif"}), encoding="utf-8")
    dest = tmp_path / "out"

    code = main([str(input_dir / "wide.png"), "-d", str(dest)])

    assert code == 0
    assert (dest / "wide_edited.gif").read_bytes()[:6] in (b"GIF87a", b"GIF89a")


def test_main_saves_effective_config(input_dir: Path, tmp_path: Path) -> None:
    config_path = tmp_path / "saved.json"

    code = main(
        [
            str(input_dir / "wide.png"),
            "-d",
            str(tmp_path / "out"),
            "--config",
            str(config_path),
            "-q",
            "70",
            "--save-config",
        ]
    )

    assert code == 0
    saved = json.loads(config_path.read_text(encoding="utf-8"))
    assert saved["quality"] == 70
    assert saved["schema_version"] == 1
