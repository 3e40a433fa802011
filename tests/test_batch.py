import json

import cv2
import numpy as np
import pytest

import cropscout.cli as cli
from cropscout.models import BoostArea, Rect
from cropscout.options import CropOptions


def _write_photo(path, width: int = 300, height: int = 200, cx: int = 220) -> None:
    img = np.zeros((height, width, 3), dtype=np.uint8)
    cv2.circle(img, (cx, height // 2), 40, (0, 200, 255), -1)
    cv2.rectangle(img, (cx - 20, height // 2 - 20), (cx + 20, height // 2 + 20), (255, 255, 255), 2)
    assert cv2.imwrite(str(path), img)


def test_run_batch_crops_folder_and_writes_reports(tmp_path) -> None:
    src = tmp_path / "input"
    src.mkdir()
    _write_photo(src / "a.jpg")
    _write_photo(src / "b.png", cx=80)
    (src / "bad.jpg").write_bytes(b"not really a jpeg")
    (src / "notes.txt").write_text("ignored", encoding="utf-8")
    out = tmp_path / "out"

    report = cli.run_batch(
        str(src),
        str(out),
        options=CropOptions(aspect=1.0),
        save_debug=True,
    )

    assert [row["filename"] for row in report] == ["a.jpg", "b.png"]
    for row in report:
        assert row["crop_xywh"][2:] == [200, 200]
        written = cv2.imread(str(out / row["output"]))
        assert written.shape[:2] == (200, 200)
    assert report[0]["crop_xywh"][0] > report[1]["crop_xywh"][0]

    assert (out / "debug_a.jpg").exists()
    assert (out / "debug_a.jpg.json").exists()
    assert not (out / "bad_crop.jpg").exists()

    payload = json.loads((out / "crop_report.json").read_text(encoding="utf-8"))
    assert len(payload["crops"]) == 2
    assert payload["skipped"][0]["filename"] == "bad.jpg"

    md = (out / "crop_report.md").read_text(encoding="utf-8")
    assert "# cropscout Crop Report" in md
    assert "- Target: aspect `1:1`" in md
    assert "| 1 | a.jpg |" in md
    assert "## Skipped" in md
    assert "| bad.jpg |" in md


def test_run_batch_single_file_resizes_output(tmp_path) -> None:
    photo = tmp_path / "photo.jpg"
    _write_photo(photo)
    out = tmp_path / "out"

    report = cli.run_batch(
        str(photo),
        str(out),
        options=CropOptions(width=4, height=5),
        boost_areas=[BoostArea(Rect(200, 50, 60, 100), 1.0)],
        out_size=(40, 50),
        quality=75,
    )

    assert len(report) == 1
    x, y, w, h = report[0]["crop_xywh"]
    assert (w, h) == (160, 200)
    assert x + w <= 300
    assert cv2.imread(str(out / "photo_crop.jpg")).shape[:2] == (50, 40)
    assert not list(out.glob("debug_*"))


def test_run_batch_missing_input_exits(tmp_path, capsys) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.run_batch(str(tmp_path / "nope"), str(tmp_path / "out"))

    assert exc.value.code == 1
    assert "Input not found" in capsys.readouterr().out


def test_run_batch_empty_folder_exits(tmp_path, capsys) -> None:
    empty = tmp_path / "empty"
    empty.mkdir()

    with pytest.raises(SystemExit) as exc:
        cli.run_batch(str(empty), str(tmp_path / "out"))

    assert exc.value.code == 1
    assert "No valid images found" in capsys.readouterr().out


def test_run_batch_skips_images_smaller_than_the_crop(tmp_path) -> None:
    photo = tmp_path / "tiny.png"
    _write_photo(photo, width=40, height=30, cx=20)
    out = tmp_path / "out"

    report = cli.run_batch(str(photo), str(out), options=CropOptions(crop_width=64, crop_height=64))

    assert report == []
    payload = json.loads((out / "crop_report.json").read_text(encoding="utf-8"))
    assert "No candidate crop" in payload["skipped"][0]["error"]


def test_markdown_report_escapes_table_cells(tmp_path) -> None:
    report_path = tmp_path / "report.md"

    cli.write_markdown_report(
        report_path,
        input_path=tmp_path,
        output_folder=tmp_path / "out",
        options=CropOptions(width=16, height=9),
        rows=[
            {
                "filename": "a|b.jpg",
                "output": "a|b_crop.jpg",
                "crop_xywh": [1, 2, 3, 4],
                "score": {"total": 0.5, "detail": 1.0, "skin": 0.0, "saturation": 2.0, "boost": 0.0, "penalty": 1.0},
            }
        ],
        failures=[{"filename": "bad.jpg", "error": "Cannot read\nbad.jpg"}],
    )

    md = report_path.read_text(encoding="utf-8")
    assert "- Target: `16x9`" in md
    assert "a\\|b.jpg" in md
    assert "(1, 2, 3, 4)" in md
    assert "| 0.500000 |" in md
    assert "Cannot read bad.jpg" in md
