"""
Promo Video Pipeline
====================

Turns scene prompts into a finished marketing video: multi-provider AI clip
generation with fallback, a persistent generation job queue, a quality gate
in front of rendering, and ffmpeg assembly with transitions, audio and
overlays.

Features:
- Direct (Runway) and aggregator (PiAPI: Kling, Luma, Hailuo, Hunyuan, Veo) providers
- Content-aware provider ranking with an optional recommender
- Re-hosting of generated media on durable storage (local or S3)
- SQLite-backed job worker with retries and stuck-job recovery
- Scene scoring and render gating
- Crossfades, Ken Burns stills, text overlays, audio mixing and watermarks

Quick Start:
    from video_pipeline import ProviderOrchestrator, OrchestrationRequest, get_config

    config = get_config()
    async with ProviderOrchestrator(config.providers) as orchestrator:
        result = await orchestrator.generate(OrchestrationRequest(
            prompt="Steam rising from a fresh espresso, macro shot",
            scene_type="hook",
        ))
        print(result.media_url)
"""

__version__ = "0.3.0"

# =============================================================================
# Core
# =============================================================================

from .core.config import Config, get_config, set_config
from .core.exceptions import (
    VideoPipelineError,
    ConfigurationError,
    ProviderError,
    ValidationError,
    SecurityError,
    AssemblyError,
)
from .core.logging_setup import setup_logging

# =============================================================================
# Pipeline
# =============================================================================

from .providers import get_provider, list_providers
from .workflow import OrchestrationRequest, OrchestrationResult, ProviderOrchestrator
from .jobs import GenerationJob, GenerationWorker, JobStatus, JobStore
from .quality import ProjectQualityReport, QualityGate, SceneAnalysis
from .assembly import AssemblyConfig, AssemblyEngine, AssemblyResult, AudioTrack, SceneClip, WatermarkConfig
from .utils.storage import create_storage

__all__ = [
    "__version__",

    # Core
    "Config",
    "get_config",
    "set_config",
    "setup_logging",

    # Exceptions
    "VideoPipelineError",
    "ConfigurationError",
    "ProviderError",
    "ValidationError",
    "SecurityError",
    "AssemblyError",

    # Providers
    "get_provider",
    "list_providers",
    "create_storage",

    # Orchestration
    "OrchestrationRequest",
    "OrchestrationResult",
    "ProviderOrchestrator",

    # Jobs
    "GenerationJob",
    "GenerationWorker",
    "JobStatus",
    "JobStore",

    # Quality
    "ProjectQualityReport",
    "QualityGate",
    "SceneAnalysis",

    # Assembly
    "AssemblyConfig",
    "AssemblyEngine",
    "AssemblyResult",
    "AudioTrack",
    "SceneClip",
    "WatermarkConfig",
]
