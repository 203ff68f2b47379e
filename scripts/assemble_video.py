#!/usr/bin/env python3
"""
CLI Script: Assemble Video
==========================

Renders a video from a YAML assembly file.

Usage:
    python scripts/assemble_video.py promo.yaml -o output/promo.mp4

Assembly file:
    resolution: 1080x1920
    scenes:
      - video_url: https://cdn.example.com/hook.mp4
        duration: 4
        text: "Fresh every morning"
      - image_url: https://cdn.example.com/product.jpg
        duration: 5
        transition: dissolve
    audio_tracks:
      - url: https://cdn.example.com/music.mp3
        volume: 30
        fade_out: 2
    watermark:
      url: logo.png
      placement: top-right
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

import yaml

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from video_pipeline.assembly import AssemblyConfig, AssemblyEngine, AssemblyProgress
from video_pipeline.core.config import Config
from video_pipeline.core.exceptions import VideoPipelineError
from video_pipeline.core.logging_setup import setup_logging
from video_pipeline.utils.storage import format_file_size


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Assemble scenes into a finished video",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "assembly_file",
        help="YAML file describing scenes, audio and watermark",
    )
    parser.add_argument(
        "-o", "--output",
        help="Output video path (default: session work dir)",
    )
    parser.add_argument(
        "--keep-work-dir",
        action="store_true",
        help="Keep intermediate files",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the result as JSON",
    )
    parser.add_argument(
        "--config",
        help="Path to config file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Debug logging",
    )
    return parser.parse_args()


def print_progress(event: AssemblyProgress) -> None:
    print(f"[{event.progress:3d}%] {event.message}")


async def main():
    """Main CLI entry point."""
    args = parse_args()

    try:
        config = Config.load(args.config)
        with open(args.assembly_file, "r") as f:
            assembly = AssemblyConfig.from_dict(yaml.safe_load(f) or {})
    except (OSError, yaml.YAMLError, TypeError) as e:
        print(f"Error: could not read {args.assembly_file}: {e}")
        sys.exit(1)
    except VideoPipelineError as e:
        print(f"Error: {e}")
        sys.exit(1)

    setup_logging(config.logging, "DEBUG" if args.verbose else None)

    if args.output:
        assembly.output_path = args.output
    if args.keep_work_dir:
        config.assembly.keep_work_dir = True

    if not args.json:
        print(f"Assembling {len(assembly.scenes)} scenes ({assembly.total_duration:.1f}s of source media)")

    engine = AssemblyEngine(config.assembly)
    result = await engine.assemble(assembly, on_progress=None if args.json else print_progress)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    elif result.success:
        print(f"\nVideo: {result.output_path}")
        print(f"Duration: {result.duration:.1f}s")
        if result.file_size:
            print(f"Size: {format_file_size(result.file_size)}")
        for warning in result.warnings:
            print(f"Warning: {warning}")
    else:
        print(f"\nError: {result.error}")

    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    asyncio.run(main())
