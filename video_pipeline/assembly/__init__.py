"""
Video assembly: ffmpeg rendering of scenes, audio and overlays.
"""

from .engine import (
    AssemblyEngine,
    AssemblyStream,
    audio_mix_filter,
    timeline_duration,
    xfade_filter,
    xfade_offsets,
)
from .ffmpeg import FFmpegRunner
from .models import (
    AssemblyConfig,
    AssemblyPhase,
    AssemblyProgress,
    AssemblyResult,
    AudioTrack,
    SceneClip,
    WatermarkConfig,
)
from .progress import ProgressChannel

__all__ = [
    "AssemblyEngine",
    "AssemblyStream",
    "audio_mix_filter",
    "timeline_duration",
    "xfade_filter",
    "xfade_offsets",
    "FFmpegRunner",
    "AssemblyConfig",
    "AssemblyPhase",
    "AssemblyProgress",
    "AssemblyResult",
    "AudioTrack",
    "SceneClip",
    "WatermarkConfig",
    "ProgressChannel",
]
