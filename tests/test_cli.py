import json

import pytest
from PIL import Image

from bitmap_engine.cli import Operation, build_parser, main


def test_parse_operation():
    assert Operation.parse("blur:3") == Operation("blur", ["3"])
    assert Operation.parse("resize:40x20") == Operation("resize", ["40", "20"])
    assert Operation.parse("Invert") == Operation("invert", [])
    assert str(Operation("crop", ["1", "2", "3", "4"])) == "crop:1,2,3,4"


def test_parser_rejects_unknown_operation(tmp_path):
    with pytest.raises(SystemExit):
        build_parser().parse_args([str(tmp_path / "a.png"), str(tmp_path / "b.png"), "--op", "emboss"])


def test_invert_end_to_end(tmp_path, write_png):
    source = write_png(tmp_path / "in.png")
    output = tmp_path / "out.png"
    assert main([str(source), str(output), "--op", "invert"]) == 0
    with Image.open(output) as image:
        assert image.convert("RGBA").getpixel((0, 0)) == (0, 255, 255, 255)


def test_chained_operations(tmp_path, write_png):
    source = write_png(tmp_path / "in.png", size=(8, 6))
    output = tmp_path / "out.png"
    assert main([str(source), str(output), "--op", "rotate:90", "--op", "crop:0,0,3,4"]) == 0
    with Image.open(output) as image:
        assert image.size == (3, 4)


def test_jpeg_output_with_quality(tmp_path, write_png):
    source = write_png(tmp_path / "in.png")
    output = tmp_path / "out.jpg"
    assert main([str(source), str(output), "--op", "resize:4x3", "--quality", "0.5"]) == 0
    with Image.open(output) as image:
        assert image.format == "JPEG"
        assert image.size == (4, 3)


def test_config_only(tmp_path, capsys):
    config_path = tmp_path / "engine.json"
    config_path.write_text(json.dumps({"max_history_size": 9}), encoding="utf-8")
    code = main(["in.png", "out.png", "--op", "blur:2", "--config", str(config_path), "--config-only"])
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["config"]["max_history_size"] == 9
    assert payload["operations"] == ["blur:2"]


def test_invalid_quality_exits(tmp_path):
    with pytest.raises(SystemExit):
        main([str(tmp_path / "a.png"), str(tmp_path / "b.png"), "--quality", "5"])


def test_missing_input_returns_error(tmp_path):
    assert main([str(tmp_path / "missing.png"), str(tmp_path / "out.png")]) == 1
