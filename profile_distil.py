#!/usr/bin/env python3
"""Profile distil.py stage by stage to identify performance bottlenecks."""

import cProfile
import io
import pstats
import sys
import time
from pathlib import Path
from typing import Optional

from distil import (
    DistilConfig, DistilError, build_histogram, export_palette, load_image, make_quantizer,
    merge_similar_colors, sample_pixels, scale_image, to_lab,
)
from quantizers import assign_to_palette

STAGES = ('load', 'sample', 'quantize', 'histogram', 'convert', 'merge', 'export')


def profile_image(image_path: str, config: Optional[DistilConfig] = None,
                  verbose: bool = True) -> dict:
    """Time a single image through every pipeline stage."""
    config = config or DistilConfig()

    if verbose:
        print(f"\n{'='*60}")
        print(f"Profiling: {Path(image_path).name}")
        print(f"{'='*60}")

    timings = {}

    start = time.perf_counter()
    image = load_image(image_path)
    timings['load'] = time.perf_counter() - start

    start = time.perf_counter()
    samples = sample_pixels(scale_image(image, config.max_sample_count),
                            config.min_black, config.max_white)
    timings['sample'] = time.perf_counter() - start

    start = time.perf_counter()
    palette = make_quantizer(config).quantize(samples, config.capacity)
    assigned = assign_to_palette(samples, palette)
    timings['quantize'] = time.perf_counter() - start

    start = time.perf_counter()
    colors, counts = build_histogram(assigned)
    timings['histogram'] = time.perf_counter() - start

    start = time.perf_counter()
    lab_palette = to_lab(colors, counts)
    timings['convert'] = time.perf_counter() - start

    start = time.perf_counter()
    merged = merge_similar_colors(lab_palette, config.min_distance, config.merge_mode)
    timings['merge'] = time.perf_counter() - start

    start = time.perf_counter()
    result = export_palette(merged)
    timings['export'] = time.perf_counter() - start

    total = sum(timings.values())
    timings['total'] = total

    if verbose:
        print(f"  Samples: {len(samples):,}")
        print(f"  Histogram colors: {len(colors):,}")
        print(f"  Palette colors: {len(result):,}")
        print(f"\nStage timings:")
        for stage, t in timings.items():
            pct = (t / total * 100) if stage != 'total' and total else 100
            print(f"  {stage:20s}: {t:6.3f}s ({pct:5.1f}%)")

    return timings


def detailed_profile(image_path: str, config: Optional[DistilConfig] = None) -> str:
    """Run cProfile over quantization (the main compute stage)."""
    config = config or DistilConfig()

    # Prepare samples first (outside profiling)
    image = load_image(image_path)
    samples = sample_pixels(scale_image(image, config.max_sample_count),
                            config.min_black, config.max_white)

    profiler = cProfile.Profile()
    profiler.enable()
    make_quantizer(config).quantize(samples, config.capacity)
    profiler.disable()

    stream = io.StringIO()
    stats = pstats.Stats(profiler, stream=stream)
    stats.sort_stats('cumulative')
    stats.print_stats(30)  # Top 30 functions

    return stream.getvalue()


def main(argv: Optional[list] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    images_dir = Path(argv[0]) if argv else Path('source_images')

    images = sorted(p for p in images_dir.glob('*') if p.suffix.lower() in {'.png', '.jpg', '.jpeg'})
    if not images:
        print(f"No images found in {images_dir}/")
        return 1

    print(f"Found {len(images)} test images")

    all_timings = []
    for img in images:
        try:
            all_timings.append((img, profile_image(str(img))))
        except DistilError as e:
            print(f"  Skipping {img.name}: {e}")

    if not all_timings:
        print("No images could be profiled")
        return 1

    # Summary
    print(f"\n{'='*60}")
    print("SUMMARY")
    print(f"{'='*60}")
    print(f"{'Image':<35} {'Quantize':>10} {'Merge':>8} {'Total':>8}")
    print("-" * 60)
    for img, timings in all_timings:
        print(f"{img.name:<35} {timings['quantize']:>9.3f}s {timings['merge']:>7.3f}s {timings['total']:>7.3f}s")

    print(f"\n{'='*60}")
    first = all_timings[0][0]
    print(f"Detailed profile of quantization: {first.name}")
    print(f"{'='*60}")
    print(detailed_profile(str(first)))

    return 0


if __name__ == "__main__":
    sys.exit(main())
