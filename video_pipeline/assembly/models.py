"""
Assembly Models
===============

Per-render configuration and the progress/result values reported by the
assembly engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional, List, Dict, Any, Tuple
from urllib.parse import urlparse

from ..core.exceptions import ValidationError


VIDEO_EXTENSIONS = {".mp4", ".mov", ".webm", ".mkv", ".m4v"}

# Scene transition -> xfade transition name
XFADE_TRANSITIONS = {
    "fade": "fade",
    "dissolve": "dissolve",
    "wipe": "wipeleft",
    "zoom": "zoomin",
    "none": "fade",
}

TEXT_POSITIONS = {
    "top": "h*0.08",
    "center": "(h-text_h)/2",
    "bottom": "h*0.85",
}

WATERMARK_MARGIN = 20
WATERMARK_POSITIONS = {
    "top-left": f"x={WATERMARK_MARGIN}:y={WATERMARK_MARGIN}",
    "top-right": f"x=W-w-{WATERMARK_MARGIN}:y={WATERMARK_MARGIN}",
    "bottom-left": f"x={WATERMARK_MARGIN}:y=H-h-{WATERMARK_MARGIN}",
    "bottom-right": f"x=W-w-{WATERMARK_MARGIN}:y=H-h-{WATERMARK_MARGIN}",
    "center": "x=(W-w)/2:y=(H-h)/2",
}


def _is_video_url(url: str) -> bool:
    parsed = urlparse(url)
    return PurePosixPath(parsed.path).suffix.lower() in VIDEO_EXTENSIONS or "pexels.com" in parsed.netloc


@dataclass
class SceneClip:
    """One scene of the final video."""

    duration: float
    video_url: Optional[str] = None
    image_url: Optional[str] = None
    transition: str = "fade"
    text: Optional[str] = None
    text_position: str = "bottom"
    ken_burns: bool = True
    scene_id: Optional[str] = None

    def __post_init__(self):
        if self.duration <= 0:
            raise ValidationError(
                f"Scene duration must be positive, got {self.duration}",
                field="duration",
                value=self.duration,
            )
        if self.text_position not in TEXT_POSITIONS:
            self.text_position = "bottom"
        if self.transition not in XFADE_TRANSITIONS:
            self.transition = "fade"

    @property
    def source_url(self) -> Optional[str]:
        return self.video_url or self.image_url

    @property
    def is_image(self) -> bool:
        return not self.video_url


@dataclass
class AudioTrack:
    """Music, voiceover or sound effect track; volume is 0-100."""

    url: str
    type: str = "music"
    volume: Optional[float] = None
    fade_in: Optional[float] = None
    fade_out: Optional[float] = None
    start_time: Optional[float] = None

    @property
    def is_video_source(self) -> bool:
        """Tracks cut from stock video need their audio extracted first."""
        return _is_video_url(self.url)

    @property
    def gain(self) -> float:
        volume = 80 if self.volume is None else self.volume
        return max(0.0, min(100.0, volume)) / 100


@dataclass
class WatermarkConfig:
    """Logo overlay; ``size`` is a percentage of the video width."""

    url: str
    placement: str = "bottom-right"
    opacity: Optional[float] = None
    size: Optional[float] = None

    @property
    def position(self) -> str:
        return WATERMARK_POSITIONS.get(self.placement, WATERMARK_POSITIONS["bottom-right"])

    def scaled_width(self, video_width: int) -> int:
        size = 15 if self.size is None else self.size
        return max(1, round(size / 100 * video_width))

    @property
    def effective_opacity(self) -> float:
        if self.opacity is None:
            return 0.8
        return max(0.0, min(1.0, self.opacity))


@dataclass
class AssemblyConfig:
    """Everything needed for one render."""

    scenes: List[SceneClip]
    audio_tracks: List[AudioTrack] = field(default_factory=list)
    watermark: Optional[WatermarkConfig] = None
    resolution: Optional[str] = None
    fps: Optional[int] = None
    background_color: Optional[str] = None
    title: Optional[str] = None
    output_path: Optional[str] = None

    def dimensions(self, default: str = "1920x1080") -> Tuple[int, int]:
        resolution = self.resolution or default
        try:
            width, height = (int(part) for part in resolution.lower().split("x"))
        except ValueError:
            raise ValidationError(
                f"Invalid resolution: {resolution}",
                field="resolution",
                value=resolution,
                constraint="WIDTHxHEIGHT",
            )
        return width, height

    @property
    def total_duration(self) -> float:
        return sum(scene.duration for scene in self.scenes)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssemblyConfig":
        """Build a config from a dictionary (e.g. a parsed YAML file)."""
        watermark = data.get("watermark")
        return cls(
            scenes=[SceneClip(**scene) for scene in data.get("scenes") or []],
            audio_tracks=[AudioTrack(**track) for track in data.get("audio_tracks") or []],
            watermark=WatermarkConfig(**watermark) if watermark else None,
            resolution=data.get("resolution"),
            fps=data.get("fps"),
            background_color=data.get("background_color"),
            title=data.get("title"),
            output_path=data.get("output_path"),
        )


class AssemblyPhase(Enum):
    PREPARING = "preparing"
    DOWNLOADING = "downloading"
    PROCESSING = "processing"
    ENCODING = "encoding"
    FINALIZING = "finalizing"


@dataclass
class AssemblyProgress:
    phase: AssemblyPhase
    progress: int
    message: str
    current_scene: Optional[int] = None
    total_scenes: Optional[int] = None


@dataclass
class AssemblyResult:
    """Outcome of a render."""

    success: bool
    output_path: Optional[str] = None
    duration: Optional[float] = None
    file_size: Optional[int] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    work_dir: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "output_path": self.output_path,
            "duration": self.duration,
            "file_size": self.file_size,
            "error": self.error,
            "warnings": list(self.warnings),
            "work_dir": self.work_dir,
        }
