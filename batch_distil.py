#!/usr/bin/env python3
"""Batch distil a directory of images into palette swatches."""

import argparse
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from pathlib import Path
from typing import Optional

from loguru import logger

from distil import (
    DecodeError, DistilConfig, SwatchExportError, Uninteresting, UnsupportedFormat,
    add_config_arguments, build_config, configure_logging, distil_path,
)
from swatch import SWATCH_COUNT, save_swatch


def find_images(directory: Path) -> list[Path]:
    """Find all PNG and JPEG files in directory."""
    extensions = {'.jpg', '.jpeg', '.png'}
    images = set()
    for ext in extensions:
        images.update(directory.glob(f'*{ext}'))
        images.update(directory.glob(f'*{ext.upper()}'))
    return sorted(images)


def distil_one(image_path: Path, output_dir: Path, swatches: int,
               config: DistilConfig) -> dict:
    """
    Distil a single image and write its swatch.

    Returns:
        Summary dict with 'status' of 'ok', 'uninteresting' or 'error'
    """
    start = time.perf_counter()
    try:
        result = distil_path(image_path, config)
    except Uninteresting as e:
        logger.warning(f"{image_path.name}: {e}")
        return {'image': image_path.name, 'status': 'uninteresting'}
    except (DecodeError, UnsupportedFormat) as e:
        return {'image': image_path.name, 'status': 'error', 'error': str(e)}

    output_file = output_dir / f"{image_path.stem}-palette.png"
    if output_file.exists():
        logger.warning(f"Overwriting {output_file.name}")
    try:
        save_swatch(result, output_file, swatches)
    except SwatchExportError as e:
        return {'image': image_path.name, 'status': 'error', 'error': str(e)}

    return {
        'image': image_path.name,
        'status': 'ok',
        'colors': len(result),
        'samples': result.total,
        'top': result.hex_colors[:swatches],
        'elapsed': time.perf_counter() - start,
    }


def run_batch(images: list[Path], output_dir: Path, swatches: int = SWATCH_COUNT,
              workers: int = 1, config: Optional[DistilConfig] = None) -> list[dict]:
    """
    Distil every image, one independent pipeline per image.

    Args:
        images: Image files to process
        output_dir: Directory for swatches
        swatches: Colors per swatch
        workers: Number of images processed concurrently
        config: Pipeline tunables shared by every run

    Returns:
        list of summary dicts in the order of `images`
    """
    config = config or DistilConfig()
    output_dir.mkdir(parents=True, exist_ok=True)

    total = len(images)
    summaries = {}
    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_path = {
            executor.submit(distil_one, path, output_dir, swatches, config): path
            for path in images
        }
        for done, future in enumerate(as_completed(future_to_path), 1):
            path = future_to_path[future]
            summary = future.result()
            summaries[path] = summary

            if summary['status'] == 'ok':
                print(f"[{done}/{total}] {path.name} → {summary['colors']} colors ({summary['elapsed']:.2f}s)")
            elif summary['status'] == 'uninteresting':
                print(f"[{done}/{total}] {path.name} → no interesting colors")
            else:
                print(f"[{done}/{total}] {path.name} → ERROR: {summary['error']}", file=sys.stderr)

    return [summaries[path] for path in images]


def write_report(summaries: list[dict], report_path: Path, config: DistilConfig) -> None:
    """Write a plain-text summary of a batch run."""
    with open(report_path, 'w') as f:
        f.write("Batch Distil Report\n")
        f.write(f"Generated: {datetime.now().isoformat()}\n")
        f.write(f"Quantizer: {config.quantizer} ({config.capacity} colors)\n")
        f.write(f"Merge: {config.merge_mode}, ΔE2000 < {config.min_distance}\n")
        f.write(f"Images: {len(summaries)}\n")
        f.write("=" * 60 + "\n\n")

        for s in summaries:
            if s['status'] == 'error':
                f.write(f"{s['image']}: ERROR - {s['error']}\n\n")
                continue
            if s['status'] == 'uninteresting':
                f.write(f"{s['image']}: no interesting colors\n\n")
                continue

            f.write(f"{s['image']}\n")
            f.write(f"  Colors: {s['colors']} from {s['samples']:,} samples\n")
            f.write(f"  Top: {' '.join(s['top'])}\n")
            f.write("\n")


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(
        description='Batch distil images into palette swatches.'
    )
    parser.add_argument(
        '--input', '-i',
        required=True,
        help='Directory containing images to distil'
    )
    parser.add_argument(
        '--output', '-o',
        required=True,
        help='Directory for swatch PNGs and summary.txt'
    )
    parser.add_argument(
        '--swatches', '-n',
        type=int,
        default=SWATCH_COUNT,
        help=f'Number of colors per swatch (default: {SWATCH_COUNT})'
    )
    parser.add_argument(
        '--workers', '-w',
        type=int,
        default=1,
        help='Images to distil concurrently (default: 1)'
    )
    add_config_arguments(parser)

    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if args.swatches < 1:
        parser.error(f"--swatches must be at least 1, got {args.swatches}")

    try:
        config = build_config(args)
    except ValueError as e:
        parser.error(str(e))

    input_dir = Path(args.input)
    output_dir = Path(args.output)

    # Validate input directory
    if not input_dir.is_dir():
        print(f"Error: Input directory not found: {input_dir}", file=sys.stderr)
        return 2

    images = find_images(input_dir)
    if not images:
        print(f"No images found in {input_dir}", file=sys.stderr)
        return 2

    batch_start = time.perf_counter()
    summaries = run_batch(images, output_dir, args.swatches, max(1, args.workers), config)
    batch_elapsed = time.perf_counter() - batch_start

    report_path = output_dir / "summary.txt"
    write_report(summaries, report_path, config)

    succeeded = sum(1 for s in summaries if s['status'] == 'ok')
    failed = [s for s in summaries if s['status'] == 'error']

    # Summary
    print()
    print(f"Completed: {succeeded}/{len(images)} succeeded in {batch_elapsed:.2f}s")
    print(f"Summary report: {report_path}")
    if failed:
        print(f"Failed ({len(failed)}):")
        for s in failed:
            print(f"  - {s['image']}: {s['error']}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
