"""Command-line interface for fused extraction of single images and folders.

Provides subcommands for extracting one image (local file or URL) to JSON
and for processing a folder of item photos into a CSV report.
"""

import argparse
import asyncio
import csv
import dataclasses
import json
import sys
import time
from pathlib import Path

import httpx

from src.extraction.fusion import FusionEngine
from src.extraction.models import ExtractionRequest, FusedResult, Provider
from src.ocr.image_source import encode_base64
from src.utils.config import AppConfig, load_config
from src.utils.logger import get_logger, setup_logging
from src.validation.review import ReviewPolicy

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = (
    "*.png",
    "*.jpg",
    "*.jpeg",
    "*.webp",
    "*.gif",
    "*.tiff",
    "*.tif",
)
_META_COLUMNS = [
    "filename",
    "status",
    "provider",
    "confidence",
    "auto_apply",
    "image_quality",
    "processing_time_ms",
    "error",
]
_FIELD_COLUMNS = [
    "title",
    "brand",
    "model",
    "serial_number",
    "category",
    "estimated_value",
    "description",
]


def _find_images(input_dir: Path) -> list[Path]:
    """Find all supported image files in a directory.

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


def build_request(source: str) -> ExtractionRequest:
    """Turn a CLI argument into an extraction request.

    ``http(s)://`` arguments are passed by URL; anything else is read from
    disk and sent inline.
    """
    if source.startswith(("http://", "https://")):
        return ExtractionRequest(image_url=source)
    return ExtractionRequest(image_base64=encode_base64(Path(source).read_bytes()))


def result_to_dict(result: FusedResult, policy: ReviewPolicy) -> dict[str, object]:
    """Serialize a fused result together with its review decision."""
    decision = policy.decide(result)
    data: dict[str, object] = dataclasses.asdict(result)
    data["metadata"]["providers_used"] = list(result.metadata.providers_used)
    data["review"] = {
        "auto_apply": decision.auto_apply,
        "band": decision.band.value,
        "message": decision.message,
    }
    return data


async def _extract_files(
    files: list[Path], config: AppConfig
) -> list[FusedResult | BaseException]:
    """Fuse images with at most ``max_concurrent_extractions`` in flight.

    Each file is read only once its slot is acquired, and every extraction
    shares one HTTP client.
    """
    limit = asyncio.Semaphore(config.fusion.max_concurrent_extractions)

    async with httpx.AsyncClient(
        timeout=config.fusion.provider_timeout_seconds
    ) as client:
        engine = FusionEngine(config, client=client)

        async def extract_one(file_path: Path) -> FusedResult:
            async with limit:
                return await engine.extract(build_request(str(file_path)))

        return await asyncio.gather(
            *(extract_one(f) for f in files), return_exceptions=True
        )


def process_folder(
    input_dir: Path,
    output_csv: Path,
    verbose: bool = False,
    config: AppConfig | None = None,
) -> dict[str, int]:
    """Fuse every image in a folder and export results to CSV.

    Images for which neither provider returned anything are reported as
    ``no_result`` rather than as successes.

    Args:
        input_dir: Directory containing item photos.
        output_csv: Path for the output CSV file.
        verbose: Whether to print per-file results.
        config: Application configuration. Loaded from disk if ``None``.

    Returns:
        Summary dict with total, successful, no_result, and failed counts.
    """
    config = config or load_config()
    policy = ReviewPolicy(config.review)

    files = _find_images(input_dir)
    if not files:
        logger.warning("No images found in %s", input_dir)
        return {"total": 0, "successful": 0, "no_result": 0, "failed": 0}

    logger.info(
        "Found %d images to process (%d at a time)",
        len(files),
        config.fusion.max_concurrent_extractions,
    )

    start_time = time.time()
    outcomes = asyncio.run(_extract_files(files, config))
    logger.info("Fused %d images in %.1fs", len(files), time.time() - start_time)

    counts = {"success": 0, "no_result": 0, "failed": 0}
    results: list[dict[str, object]] = []
    for file_path, outcome in zip(files, outcomes, strict=True):
        if isinstance(outcome, BaseException):
            logger.error("Failed to process %s: %s", file_path.name, outcome)
            row = _failed_row(file_path, outcome)
        else:
            row = _result_row(file_path, outcome, policy)
        counts[str(row["status"])] += 1
        if verbose:
            print(f"{file_path.name}: {row['status']} ({row.get('confidence', 0)}%)")
        results.append(row)

    _write_csv(results, output_csv)
    logger.info("Results written to %s", output_csv)

    summary = {
        "total": len(files),
        "successful": counts["success"],
        "no_result": counts["no_result"],
        "failed": counts["failed"],
    }
    _print_summary(summary, output_csv)
    return summary


def _result_row(
    file_path: Path, result: FusedResult, policy: ReviewPolicy
) -> dict[str, object]:
    no_result = result.provider == Provider.NONE
    row: dict[str, object] = {
        "filename": file_path.name,
        "status": "no_result" if no_result else "success",
        "provider": result.provider,
        "confidence": result.confidence,
        "auto_apply": policy.decide(result).auto_apply,
        "image_quality": result.metadata.image_quality,
        "processing_time_ms": result.metadata.processing_time,
        "error": "no provider returned a result" if no_result else None,
    }
    for name in _FIELD_COLUMNS:
        row[name] = getattr(result, name)
    return row


def _failed_row(file_path: Path, exc: BaseException) -> dict[str, object]:
    return {"filename": file_path.name, "status": "failed", "error": str(exc)}


def _write_csv(results: list[dict[str, object]], output_path: Path) -> None:
    """Write extraction results to a CSV file.

    Args:
        results: List of result dictionaries.
        output_path: Path for the output CSV file.
    """
    if not results:
        return

    columns = _META_COLUMNS + _FIELD_COLUMNS
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(results)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    """Print batch processing summary to stdout.

    Args:
        summary: Counts of total, successful, no_result, and failed images.
        output_csv: Path to the output CSV.
    """
    print(f"\n{'=' * 50}")
    print("Batch Extraction Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"No result:  {summary.get('no_result', 0)}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_csv}")


def extract_single(source: str, config: AppConfig | None = None) -> dict[str, object]:
    """Fuse a single image and return the result with its review decision.

    Args:
        source: Local image path or image URL.
        config: Application configuration. Loaded from disk if ``None``.

    Returns:
        JSON-serializable fused result.
    """
    config = config or load_config()
    engine = FusionEngine(config)
    result = asyncio.run(engine.extract(build_request(source)))
    return result_to_dict(result, ReviewPolicy(config.review))


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="HomeGuard OCR fusion extractor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c", "--config", type=Path, default=None, help="YAML configuration file"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    batch_parser = subparsers.add_parser("batch", help="Process a folder of images")
    batch_parser.add_argument(
        "input_dir", type=Path, help="Input directory with images"
    )
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    batch_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    single_parser = subparsers.add_parser("extract", help="Process a single image")
    single_parser.add_argument("source", help="Image file path or http(s) URL")
    single_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        process_folder(args.input_dir, args.output, args.verbose, config)
    elif args.command == "extract":
        is_url = args.source.startswith(("http://", "https://"))
        if not is_url and not Path(args.source).exists():
            print(f"Error: {args.source} does not exist", file=sys.stderr)
            sys.exit(1)
        result = extract_single(args.source, config)
        output_str = json.dumps(result, indent=2)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str)
            print(f"Output written to {args.output}")
        else:
            print(output_str)
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
