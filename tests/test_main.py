from cropscout import __version__
import sys

import pytest

import cropscout.cli as cli
from cropscout.models import BoostArea, Rect


def test_version() -> None:
    assert __version__ == "1.0.0"


def test_main_parses_cli_and_invokes_run_batch(monkeypatch, tmp_path) -> None:
    captured = {}

    def fake_run_batch(**kwargs):
        captured.update(kwargs)
        return []

    input_dir = tmp_path / "input"
    input_dir.mkdir()
    output_dir = tmp_path / "out"

    monkeypatch.setattr(cli, "run_batch", fake_run_batch)
    monkeypatch.setattr(
        sys,
        "argv",
        [
            "cropscout",
            str(input_dir),
            "--output",
            str(output_dir),
            "--width",
            "1080",
            "--height",
            "1350",
            "--min-scale",
            "0.8",
            "--step",
            "4",
            "--boost",
            "10,20,30,40,2.5",
            "--no-rule-of-thirds",
            "--quality",
            "80",
            "--save-debug",
        ],
    )

    cli.main()

    options = captured.pop("options")
    assert captured == {
        "input_path": str(input_dir),
        "output_folder": str(output_dir),
        "boost_areas": [BoostArea(Rect(10, 20, 30, 40), 2.5)],
        "out_size": (1080, 1350),
        "save_debug": True,
        "quality": 80,
        "debug": False,
    }
    assert (options.width, options.height) == (1080, 1350)
    assert options.min_scale == 0.8
    assert options.step == 4
    assert options.rule_of_thirds is False
    assert options.prescale is True
    assert options.score_down_sample == 8


def test_main_aspect_and_no_resize_skip_output_resizing(monkeypatch, tmp_path) -> None:
    captured = {}
    monkeypatch.setattr(cli, "run_batch", lambda **kwargs: captured.update(kwargs))

    cli.main([str(tmp_path), "--aspect", "1.5", "--width", "300", "--height", "200"])
    assert captured["out_size"] is None
    assert captured["options"].aspect == 1.5

    cli.main([str(tmp_path), "--width", "300", "--height", "200", "--no-resize", "--no-prescale"])
    assert captured["out_size"] is None
    assert captured["options"].prescale is False


def test_main_reads_env_defaults_from_input_folder(monkeypatch, tmp_path) -> None:
    captured = {}
    monkeypatch.setattr(cli, "run_batch", lambda **kwargs: captured.update(kwargs))
    photos = tmp_path / "photos"
    photos.mkdir()
    (photos / ".env").write_text("CROPSCOUT_STEP=12\nCROPSCOUT_DOWNSAMPLE=4", encoding="utf-8")

    cli.main([str(photos), "--downsample", "2"])

    assert captured["options"].step == 12
    assert captured["options"].score_down_sample == 2


def test_main_unrecognized_argument_prints_full_help(monkeypatch, capsys) -> None:
    monkeypatch.setattr(sys, "argv", ["cropscout", "./input", "--bogus"])

    with pytest.raises(SystemExit) as exc:
        cli.main()

    assert exc.value.code == 2
    stderr = capsys.readouterr().err
    assert "options:" in stderr
    assert "--aspect" in stderr
    assert "--no-rule-of-thirds" in stderr
    assert "error: unrecognized arguments: --bogus" in stderr


def test_main_missing_input_prints_full_help(monkeypatch, capsys) -> None:
    monkeypatch.setattr(sys, "argv", ["cropscout"])

    with pytest.raises(SystemExit) as exc:
        cli.main()

    assert exc.value.code == 2
    stderr = capsys.readouterr().err
    assert "positional arguments:" in stderr
    assert "--boost" in stderr
    assert "error: the following arguments are required: input" in stderr


@pytest.mark.parametrize("value", ["1,2,3", "a,b,c,d", "0,0,0,5", "0,0,5,5,-1"])
def test_main_rejects_malformed_boost(value, capsys) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["./input", "--boost", value])

    assert exc.value.code == 2
    assert "--boost" in capsys.readouterr().err


def test_parse_boost_defaults_weight_to_one() -> None:
    assert cli._parse_boost(" 1, 2, 3, 4 ") == BoostArea(Rect(1, 2, 3, 4), 1.0)


@pytest.mark.parametrize(
    "extra,message",
    [
        (["--min-scale", "2", "--max-scale", "1"], "min_scale (2.0) is greater than max_scale (1.0)"),
        (["--width", "300"], "width and height must both be set"),
    ],
)
def test_main_invalid_configuration_prints_full_help(monkeypatch, tmp_path, capsys, extra, message) -> None:
    def fake_run_batch(**kwargs):
        raise AssertionError("run_batch must not be reached")

    monkeypatch.setattr(cli, "run_batch", fake_run_batch)

    with pytest.raises(SystemExit) as exc:
        cli.main([str(tmp_path), *extra])

    assert exc.value.code == 2
    stderr = capsys.readouterr().err
    assert "options:" in stderr
    assert "--min-scale" in stderr
    assert f"cropscout: error: {message}" in stderr
