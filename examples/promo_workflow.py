#!/usr/bin/env python3
"""
Promo Workflow Example
======================

Generates a three-scene promo with the provider orchestrator, runs the
scenes through the quality gate and assembles the approved clips.

Scene analysis normally comes from an external analyzer; this example
approves every generated scene by hand.
"""

import asyncio
import os
from pathlib import Path

# Add project root to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from video_pipeline import (
    AssemblyConfig,
    AssemblyEngine,
    AudioTrack,
    Config,
    OrchestrationRequest,
    ProviderOrchestrator,
    QualityGate,
    SceneAnalysis,
    SceneClip,
    create_storage,
)


SCENES = [
    ("hook", "Steam rising from a fresh espresso cup, morning light, slow push-in"),
    ("scene", "Barista pouring latte art in a busy cafe, shallow depth of field"),
    ("cta", "Coffee beans tumbling onto a wooden counter, warm tones"),
]


async def main():
    """Generate, gate and assemble a short promo."""

    if not (os.getenv("PIAPI_API_KEY") or os.getenv("RUNWAY_API_KEY")):
        print("Please set PIAPI_API_KEY or RUNWAY_API_KEY")
        return

    config = Config.load()
    storage = create_storage(config.storage)

    print("=== Promo Workflow ===")

    clips = []
    async with ProviderOrchestrator(config.providers, storage=storage) as orchestrator:
        for scene_type, prompt in SCENES:
            print(f"\nGenerating {scene_type}: {prompt}")
            result = await orchestrator.generate(OrchestrationRequest(
                prompt=prompt,
                scene_type=scene_type,
                duration=5,
                quality_tier="standard",
            ))

            for attempt in result.attempts:
                status = "ok" if attempt.success else attempt.error
                print(f"  {attempt.provider}: {status}")

            if not result.success:
                print(f"  Failed: {result.error}")
                return

            print(f"  {result.provider_used} -> {result.media_url} (${result.cost:.2f})")
            clips.append(SceneClip(duration=5, video_url=result.media_url, transition="dissolve"))

    gate = QualityGate(config.quality)
    report = gate.build_report(
        "promo-example",
        [gate.evaluate_scene(i, SceneAnalysis(score=80)) for i in range(len(clips))],
    )
    for scene in report.scenes:
        report = gate.approve_scene(report, scene.scene_index)

    allowed, reasons = gate.can_proceed_to_render(report)
    if not allowed:
        print(f"\nRender blocked: {reasons}")
        return

    print("\nAssembling video...")
    engine = AssemblyEngine(config.assembly)
    assembly = await engine.assemble(
        AssemblyConfig(
            scenes=clips,
            audio_tracks=[AudioTrack(url="music/upbeat.mp3", volume=60, fade_out=2)],
            output_path="output/promo_example.mp4",
        ),
        on_progress=lambda p: print(f"  [{p.phase.value}] {p.progress}% {p.message}"),
    )

    if assembly.success:
        print(f"\nVideo: {assembly.output_path} ({assembly.duration:.1f}s)")
    else:
        print(f"\nAssembly failed: {assembly.error}")

    for warning in assembly.warnings:
        print(f"Warning: {warning}")


if __name__ == "__main__":
    asyncio.run(main())
