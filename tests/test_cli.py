"""Tests for the receipt scanning CLI and CSV export."""

import csv
import json
from pathlib import Path
from unittest.mock import patch

import numpy as np
import pytest
from PIL import Image

from src.cli import (
    _find_images,
    _guess_mime_type,
    _print_summary,
    _write_csv,
    main,
    process_folder,
)
from src.pipeline.orchestrator import ReceiptPipeline
from src.utils.config import AppConfig


def _save_image(path: Path, pixels: np.ndarray) -> Path:
    Image.fromarray(pixels).save(path)
    return path


@pytest.fixture
def patched_cli(fake_recognizer):
    """Build CLI pipelines with default config and a fake OCR engine."""
    with (
        patch("src.cli.load_config", return_value=AppConfig()),
        patch(
            "src.cli.ReceiptPipeline",
            side_effect=lambda config: ReceiptPipeline(
                config, recognizer=fake_recognizer
            ),
        ),
    ):
        yield


class TestFindImages:
    """Tests for the _find_images helper."""

    def test_finds_supported_extensions(self, tmp_path: Path) -> None:
        for name in ["a.png", "b.jpg", "c.JPEG", "d.webp", "notes.txt", "e.pdf"]:
            (tmp_path / name).write_bytes(b"x")
        names = [p.name for p in _find_images(tmp_path)]
        assert names == ["a.png", "b.jpg", "c.JPEG", "d.webp"]

    def test_empty_dir(self, tmp_path: Path) -> None:
        assert _find_images(tmp_path) == []


class TestGuessMimeType:
    """Tests for the _guess_mime_type helper."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [("a.png", "image/png"), ("b.JPG", "image/jpeg"), ("c.tif", "image/tiff")],
    )
    def test_known_extensions(self, name: str, expected: str) -> None:
        assert _guess_mime_type(Path(name)) == expected

    def test_unknown_extension_is_not_an_image(self) -> None:
        assert _guess_mime_type(Path("ticket.xyz123")) == "application/octet-stream"


class TestWriteCsv:
    """Tests for the CSV export."""

    def test_writes_fixed_columns(self, tmp_path: Path) -> None:
        output = tmp_path / "out" / "results.csv"
        _write_csv(
            [
                {"filename": "a.png", "status": "success", "amount": "1000"},
                {"filename": "b.png", "status": "failed", "error": "bad"},
            ],
            output,
        )
        with open(output, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert rows[0]["filename"] == "a.png"
        assert rows[0]["amount"] == "1000"
        assert rows[1]["error"] == "bad"
        assert list(rows[0].keys())[:3] == ["filename", "status", "amount"]

    def test_no_rows_writes_nothing(self, tmp_path: Path) -> None:
        output = tmp_path / "results.csv"
        _write_csv([], output)
        assert not output.exists()


class TestProcessFolder:
    """Tests for batch scanning."""

    def test_batch_with_one_failure(
        self,
        tmp_path: Path,
        patched_cli,
        receipt_image: np.ndarray,
        blank_image: np.ndarray,
    ) -> None:
        _save_image(tmp_path / "receipt.png", receipt_image)
        _save_image(tmp_path / "blank.png", blank_image)
        (tmp_path / "broken.jpg").write_bytes(b"not an image")
        output = tmp_path / "results.csv"

        summary = process_folder(tmp_path, output, verbose=True)

        assert summary == {"total": 3, "successful": 2, "failed": 1}
        with open(output, newline="", encoding="utf-8") as f:
            rows = {r["filename"]: r for r in csv.DictReader(f)}
        assert rows["receipt.png"]["status"] == "success"
        assert rows["receipt.png"]["rectified"] == "True"
        assert rows["receipt.png"]["amount"] == "1000"
        assert int(rows["receipt.png"]["quality_score"]) > 50
        assert rows["blank.png"]["detected"] == "False"
        assert rows["broken.jpg"]["status"] == "failed"
        assert rows["broken.jpg"]["error"]

    def test_empty_folder(self, tmp_path: Path, patched_cli) -> None:
        summary = process_folder(tmp_path, tmp_path / "results.csv")
        assert summary == {"total": 0, "successful": 0, "failed": 0}


class TestPrintSummary:
    """Tests for the summary printer."""

    def test_prints_counts(self, capsys: pytest.CaptureFixture[str]) -> None:
        _print_summary({"total": 3, "successful": 2, "failed": 1}, Path("r.csv"))
        out = capsys.readouterr().out
        assert "Receipt Scan Complete" in out
        assert "Failed:     1" in out


class TestMain:
    """Tests for argument parsing and dispatch."""

    def test_scan_writes_json(
        self, tmp_path: Path, patched_cli, receipt_image: np.ndarray
    ) -> None:
        image_path = _save_image(tmp_path / "receipt.png", receipt_image)
        output = tmp_path / "scan.json"

        main(["scan", str(image_path), "-o", str(output), "--lang", "eng"])

        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["rectified"] is True
        assert float(data["amount"]["value"]) == 1000
        assert data["stage"] == "awaiting_confirmation"

    def test_scan_prints_json(
        self,
        tmp_path: Path,
        patched_cli,
        receipt_image: np.ndarray,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        image_path = _save_image(tmp_path / "receipt.png", receipt_image)
        main(["scan", str(image_path)])
        assert '"needs_review": false' in capsys.readouterr().out

    def test_scan_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["scan", str(tmp_path / "missing.png")])
        assert exc_info.value.code == 1

    def test_batch_requires_directory(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["batch", str(tmp_path / "nope")])
        assert exc_info.value.code == 1

    def test_batch_dispatch(self, tmp_path: Path) -> None:
        output = tmp_path / "out.csv"
        with patch("src.cli.process_folder") as mock_process:
            main(["batch", str(tmp_path), "-o", str(output), "-v"])
        mock_process.assert_called_once_with(tmp_path, output, None, True)

    def test_no_command_prints_help(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 0
