#!/usr/bin/env python3
"""
CLI Script: Generate Scene
==========================

Command-line tool for generating a single scene through the provider
orchestrator (ranking, fallback and re-hosting included).

Usage:
    python scripts/generate_scene.py --prompt "Espresso pouring in slow motion" --scene-type hook
    python scripts/generate_scene.py -p "Product rotating on a marble table" -i https://cdn.example.com/bottle.jpg
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from video_pipeline.core.config import Config
from video_pipeline.core.exceptions import VideoPipelineError
from video_pipeline.core.logging_setup import setup_logging
from video_pipeline.providers.catalog import PROVIDERS
from video_pipeline.utils.storage import create_storage
from video_pipeline.workflow import OrchestrationRequest, ProviderOrchestrator


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Generate a marketing video scene with AI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s -p "Sunrise over a coffee farm" --scene-type hook
  %(prog)s -p "Bottle turning slowly" -i https://cdn.example.com/bottle.jpg --provider runway
  %(prog)s -p "Chef plating a dish" --fallback-prompt "Close-up of a plated dish" --tier premium
        """,
    )

    parser.add_argument(
        "-p", "--prompt",
        required=True,
        help="Visual prompt for the scene",
    )
    parser.add_argument(
        "--fallback-prompt",
        help="Simpler prompt tried after every provider fails",
    )
    parser.add_argument(
        "-i", "--image",
        help="Source image URL (image-to-video)",
    )
    parser.add_argument(
        "--scene-type",
        default="scene",
        help="Scene role: hook, scene, cta, outro (default: scene)",
    )

    # Video settings
    parser.add_argument(
        "-d", "--duration",
        type=int,
        default=6,
        help="Clip duration in seconds (default: 6)",
    )
    parser.add_argument(
        "--aspect-ratio",
        default="16:9",
        choices=["16:9", "9:16", "1:1"],
        help="Aspect ratio (default: 16:9)",
    )

    # Provider settings
    parser.add_argument(
        "--provider",
        choices=sorted(PROVIDERS),
        help="Force a provider (default: ranked automatically)",
    )
    parser.add_argument(
        "--tier",
        choices=["standard", "premium", "ultra"],
        help="Quality tier",
    )
    parser.add_argument(
        "--style",
        help="Visual style hint, e.g. cinematic",
    )

    # Output
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full result as JSON",
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


async def main():
    """Main CLI entry point."""
    args = parse_args()

    try:
        config = Config.load(args.config)
    except VideoPipelineError as e:
        print(f"Error: {e}")
        sys.exit(1)

    setup_logging(config.logging, "DEBUG" if args.verbose else None)

    request = OrchestrationRequest(
        prompt=args.prompt,
        scene_type=args.scene_type,
        duration=args.duration,
        aspect_ratio=args.aspect_ratio,
        provider=args.provider,
        quality_tier=args.tier,
        source_image_url=args.image,
        fallback_prompt=args.fallback_prompt,
        visual_style=args.style,
    )

    print("=" * 50)
    print("AI Video Scene Generator")
    print("=" * 50)
    print(f"\nPrompt: {args.prompt}")
    print(f"Mode: {request.mode.value}")
    print(f"Duration: {args.duration}s")

    try:
        storage = create_storage(config.storage)
        async with ProviderOrchestrator(
            config.providers,
            storage=storage,
            storage_prefix=config.storage.key_prefix,
        ) as orchestrator:
            result = await orchestrator.generate(request)
    except KeyboardInterrupt:
        print("\nCancelled")
        sys.exit(130)
    except VideoPipelineError as e:
        print(f"\nError: {e}")
        sys.exit(1)

    print("\n" + "-" * 50)
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        for attempt in result.attempts:
            outcome = "ok" if attempt.success else attempt.error
            print(f"  [{attempt.prompt_kind}] {attempt.provider} ({attempt.model}): {outcome}")
        if result.success:
            print(f"\nProvider: {result.provider_used} ({result.model_used})")
            print(f"Video URL: {result.media_url}")
            print(f"Cost: ${result.cost:.2f}")
        else:
            print(f"\nError: {result.error}")
    print("=" * 50)

    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    asyncio.run(main())
