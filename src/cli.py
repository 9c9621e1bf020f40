"""Command-line interface for scanning receipt photos and exporting results.

Provides a ``scan`` subcommand that prints the reviewable result of one
photo as JSON and a ``batch`` subcommand that scans a folder of photos
into a CSV summary.
"""

import argparse
import csv
import json
import mimetypes
import sys
import time
from pathlib import Path

from src.api.schemas import ScanResponse
from src.pipeline.orchestrator import ReceiptPipeline
from src.utils.config import AppConfig, load_config
from src.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = (
    "*.png",
    "*.jpg",
    "*.jpeg",
    "*.webp",
    "*.bmp",
    "*.tiff",
    "*.tif",
)
_CSV_COLUMNS = [
    "filename",
    "status",
    "amount",
    "amount_confidence",
    "suggested_date",
    "needs_review",
    "detected",
    "detection_confidence",
    "rectified",
    "ocr_confidence",
    "quality_score",
    "processing_time_s",
    "error",
]


def _find_images(input_dir: Path) -> list[Path]:
    """Find all supported receipt photos in a directory.

    Args:
        input_dir: Directory to scan for images.

    Returns:
        Sorted list of image file paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


def _guess_mime_type(file_path: Path) -> str:
    mime_type, _ = mimetypes.guess_type(file_path.name)
    return mime_type or "application/octet-stream"


def scan_file(
    file_path: Path,
    config: AppConfig | None = None,
    lang: str | None = None,
) -> ScanResponse:
    """Scan a single receipt photo up to the confirmation step.

    Args:
        file_path: Path to the image file.
        config: Application configuration; loaded from disk when omitted.
        lang: Tesseract language code.

    Returns:
        Reviewable scan result.
    """
    pipeline = ReceiptPipeline(config or load_config())
    start_time = time.time()
    result = pipeline.run(file_path.read_bytes(), _guess_mime_type(file_path), lang)
    elapsed_ms = (time.time() - start_time) * 1000
    return ScanResponse.from_result(result, pipeline.draft().needs_review, elapsed_ms)


def _summary_row(file_path: Path, response: ScanResponse) -> dict[str, object]:
    boundary = response.boundary
    amount = response.amount
    return {
        "filename": file_path.name,
        "status": "success",
        "amount": amount.value if amount else None,
        "amount_confidence": amount.confidence if amount else 0.0,
        "suggested_date": response.suggested_date,
        "needs_review": response.needs_review,
        "detected": boundary.detected if boundary else False,
        "detection_confidence": round(boundary.confidence, 1) if boundary else 0.0,
        "rectified": response.rectified,
        "ocr_confidence": round(response.ocr.confidence, 1) if response.ocr else 0.0,
        "quality_score": response.quality.score if response.quality else None,
        "processing_time_s": round(response.processing_time_ms / 1000, 2),
        "error": None,
    }


def process_folder(
    input_dir: Path,
    output_csv: Path,
    lang: str | None = None,
    verbose: bool = False,
) -> dict[str, int]:
    """Scan all receipt photos in a folder and export results to CSV.

    Each photo gets its own capture session; a failure on one file is
    recorded in its row and does not stop the batch.

    Args:
        input_dir: Directory containing receipt photos.
        output_csv: Path for the output CSV file.
        lang: Tesseract language code.
        verbose: Whether to print per-file progress.

    Returns:
        Summary dict with total, successful, and failed counts.
    """
    config = load_config()

    files = _find_images(input_dir)
    if not files:
        logger.warning("No images found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0}

    logger.info("Found %d images to scan", len(files))

    rows: list[dict[str, object]] = []
    successful = 0
    failed = 0

    for i, file_path in enumerate(files, 1):
        if verbose:
            print(f"Scanning [{i}/{len(files)}]: {file_path.name}")

        try:
            response = scan_file(file_path, config, lang)
            rows.append(_summary_row(file_path, response))
            successful += 1
        except Exception as exc:
            logger.error("Failed to scan %s: %s", file_path.name, exc)
            rows.append(
                {
                    "filename": file_path.name,
                    "status": "failed",
                    "error": str(exc),
                }
            )
            failed += 1

    _write_csv(rows, output_csv)
    logger.info("Results written to %s", output_csv)

    summary = {"total": len(files), "successful": successful, "failed": failed}
    _print_summary(summary, output_csv)
    return summary


def _write_csv(rows: list[dict[str, object]], output_path: Path) -> None:
    """Write scan results to a CSV file.

    Args:
        rows: One dictionary per scanned image.
        output_path: Path for the output CSV file.
    """
    if not rows:
        return

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=_CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    print(f"\n{'=' * 50}")
    print("Receipt Scan Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_csv}")


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Receipt Capture Scanner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    scan_parser = subparsers.add_parser("scan", help="Scan a single receipt photo")
    scan_parser.add_argument("file", type=Path, help="Receipt image to scan")
    scan_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")
    scan_parser.add_argument("--lang", help="Tesseract language (default: config)")

    batch_parser = subparsers.add_parser("batch", help="Scan a folder of photos")
    batch_parser.add_argument("input_dir", type=Path, help="Input directory")
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    batch_parser.add_argument("--lang", help="Tesseract language (default: config)")
    batch_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    args = parser.parse_args(argv)

    setup_logging()

    if args.command == "scan":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        response = scan_file(args.file, lang=args.lang)
        output_str = json.dumps(response.model_dump(mode="json"), indent=2)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str, encoding="utf-8")
            print(f"Output written to {args.output}")
        else:
            print(output_str)
    elif args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        process_folder(args.input_dir, args.output, args.lang, args.verbose)
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
