"""
Assembly Engine
===============

Renders approved scene media, audio tracks and overlays into one video file
with ffmpeg.

Stages run in order: preparing, downloading, processing, encoding (sequence
then audio mix) and finalizing (watermark then final encode). Each
enhancement degrades instead of failing the render: a missing scene becomes a
solid-color filler clip, a failed crossfade chain becomes a hard-cut concat,
a failed audio mix retries with the first track and then ships video only,
and a failed watermark is skipped. Only a missing ffmpeg binary, or a failure
of the basic concat/final encode, ends the render.

Usage:
    engine = AssemblyEngine(config.assembly)
    result = await engine.assemble(AssemblyConfig(scenes=[
        SceneClip(duration=4, video_url="https://cdn.example.com/hook.mp4"),
        SceneClip(duration=5, image_url="https://cdn.example.com/product.jpg", text="Fresh daily"),
    ]))
"""

import asyncio
import logging
import shutil
import tempfile
import uuid
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Callable, List, Optional, Sequence, Tuple, Union
from urllib.parse import urlparse

import aiofiles
import httpx

from ..core.config import AssemblySettings
from ..core.exceptions import AssemblyError, SecurityError, VideoPipelineError
from ..core.security import PathValidator, escape_drawtext, is_http_url, validate_url
from ..utils.storage import ensure_dir, get_file_size
from .ffmpeg import FFmpegRunner
from .models import (
    TEXT_POSITIONS,
    XFADE_TRANSITIONS,
    AssemblyConfig,
    AssemblyPhase,
    AssemblyProgress,
    AssemblyResult,
    AudioTrack,
    SceneClip,
    WatermarkConfig,
)
from .progress import ProgressChannel

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[AssemblyProgress], None]

# Ken Burns zoom curve
KEN_BURNS_STEP = 0.0005
KEN_BURNS_MAX_ZOOM = 1.04


# =============================================================================
# Filter Builders
# =============================================================================


def scale_pad_filter(width: int, height: int) -> str:
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2"
    )


def ken_burns_filter(width: int, height: int, duration: float, fps: int) -> str:
    frames = int(round(duration * fps))
    return (
        f"zoompan=z='min(zoom+{KEN_BURNS_STEP},{KEN_BURNS_MAX_ZOOM})'"
        f":x='iw/2-(iw/zoom/2)':y='ih/2-(ih/zoom/2)'"
        f":d={frames}:s={width}x{height}:fps={fps}"
    )


def drawtext_filter(text: str, position: str = "bottom") -> str:
    y = TEXT_POSITIONS.get(position, TEXT_POSITIONS["bottom"])
    return (
        f"drawtext=text='{escape_drawtext(text)}':fontcolor=white:fontsize=48"
        f":borderw=3:bordercolor=black:x=(w-text_w)/2:y={y}"
    )


def scene_filter(scene: SceneClip, width: int, height: int, fps: int) -> str:
    """Video filter chain for one scene clip."""
    if scene.is_image and scene.ken_burns:
        chain = ken_burns_filter(width, height, scene.duration, fps)
    else:
        chain = scale_pad_filter(width, height)

    if scene.text and scene.text.strip():
        chain += "," + drawtext_filter(scene.text.strip(), scene.text_position)
    return chain


def xfade_offsets(durations: Sequence[float], transition_duration: float) -> List[float]:
    """
    Start offset of each crossfade.

    Offset ``i`` (for the join into clip ``i``) is the sum of the durations
    before clip ``i`` minus ``i`` transition overlaps, clamped at zero.
    """
    offsets = []
    for i in range(1, len(durations)):
        offset = sum(durations[:i]) - transition_duration * i
        offsets.append(round(max(0.0, offset), 3))
    return offsets


def xfade_filter(
    durations: Sequence[float],
    transitions: Sequence[str],
    transition_duration: float,
) -> str:
    """
    Chained xfade filter graph for N clips, ending in ``[outv]``.

    ``transitions[i]`` is the transition into clip ``i``; the first entry is
    ignored.
    """
    parts = []
    last = "[0:v]"
    offsets = xfade_offsets(durations, transition_duration)
    for i in range(1, len(durations)):
        label = "[outv]" if i == len(durations) - 1 else f"[v{i}]"
        kind = XFADE_TRANSITIONS.get(transitions[i] if i < len(transitions) else "fade", "fade")
        parts.append(
            f"{last}[{i}:v]xfade=transition={kind}:duration={transition_duration}"
            f":offset={offsets[i - 1]}{label}"
        )
        last = label
    return ";".join(parts)


def audio_mix_filter(tracks: Sequence[AudioTrack], video_duration: float) -> str:
    """Per-track volume and fades, mixed to ``[aout]``; audio inputs start at index 1."""
    parts = []
    for i, track in enumerate(tracks):
        chain = f"[{i + 1}:a]volume={track.gain}"
        if track.fade_in:
            chain += f",afade=t=in:st=0:d={track.fade_in}"
        if track.fade_out:
            start = max(0.0, video_duration - track.fade_out)
            chain += f",afade=t=out:st={start}:d={track.fade_out}"
        parts.append(f"{chain}[a{i}]")

    inputs = "".join(f"[a{i}]" for i in range(len(tracks)))
    parts.append(f"{inputs}amix=inputs={len(tracks)}:duration=first[aout]")
    return ";".join(parts)


def watermark_filter(watermark: WatermarkConfig, video_width: int) -> str:
    return (
        f"[1:v]scale={watermark.scaled_width(video_width)}:-1,format=rgba,"
        f"colorchannelmixer=aa={watermark.effective_opacity}[wm];"
        f"[0:v][wm]overlay={watermark.position}"
    )


def timeline_duration(
    durations: Sequence[float],
    transition_duration: float = 0.0,
    crossfaded: bool = False,
) -> float:
    """Expected length of the assembled sequence."""
    total = float(sum(durations))
    if crossfaded and len(durations) > 1:
        total -= transition_duration * (len(durations) - 1)
    return round(max(0.0, total), 3)


# =============================================================================
# Engine
# =============================================================================


class AssemblyEngine:
    """
    Multi-stage ffmpeg render pipeline.

    Renders run sequentially; one engine can serve many renders, each in its
    own session directory.
    """

    def __init__(
        self,
        settings: Optional[AssemblySettings] = None,
        runner: Optional[FFmpegRunner] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the engine.

        Args:
            settings: Assembly settings (defaults when omitted)
            runner: ffmpeg wrapper (built from settings when omitted)
            client: HTTP client for asset downloads
        """
        self.settings = settings or AssemblySettings()
        self.ffmpeg = runner or FFmpegRunner(
            ffmpeg_path=self.settings.ffmpeg_path,
            ffprobe_path=self.settings.ffprobe_path,
            timeout=self.settings.command_timeout,
        )
        self._client = client
        self._owns_client = client is None
        self._path_validator: Optional[PathValidator] = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def assemble(
        self,
        config: AssemblyConfig,
        on_progress: Optional[ProgressCallback] = None,
    ) -> AssemblyResult:
        """
        Render a video.

        Args:
            config: Scenes, audio, watermark and output settings
            on_progress: Called with an AssemblyProgress at each checkpoint

        Returns:
            AssemblyResult; failures are reported in ``error``, never raised
        """
        report = _Reporter(on_progress, len(config.scenes))
        report(AssemblyPhase.PREPARING, 0, "Preparing video assembly...")

        available = await asyncio.to_thread(self.ffmpeg.is_available)
        if not available:
            return AssemblyResult(success=False, error="FFmpeg not available")

        if not config.scenes:
            return AssemblyResult(success=False, error="No scenes to assemble")

        try:
            work_dir = self._create_work_dir()
        except OSError as e:
            return AssemblyResult(success=False, error=f"Could not create work dir: {e}")

        output_path = Path(config.output_path) if config.output_path else work_dir / "output.mp4"
        result = AssemblyResult(success=False, work_dir=str(work_dir))

        try:
            await self._render(config, work_dir, output_path, report, result)
        except VideoPipelineError as e:
            logger.error(f"Video assembly failed: {e.message}")
            result.success = False
            result.error = e.message
        except (OSError, httpx.HTTPError) as e:
            logger.error(f"Video assembly failed: {e}")
            result.success = False
            result.error = str(e) or "Video assembly failed"
        finally:
            await self._close_client()

        if not self.settings.keep_work_dir and (not result.success or output_path.parent != work_dir):
            await self.cleanup(work_dir)
            result.work_dir = None

        return result

    def stream(self, config: AssemblyConfig, maxsize: int = 64) -> "AssemblyStream":
        """
        Render a video while exposing progress as an async iterator.

        Example:
            stream = engine.stream(config)
            async for event in stream:
                print(event.phase.value, event.progress)
            result = stream.result
        """
        return AssemblyStream(self, config, maxsize)

    async def cleanup(self, work_dir: Union[str, Path]) -> None:
        """Remove a session directory; errors are logged."""
        try:
            await asyncio.to_thread(shutil.rmtree, work_dir)
            logger.debug(f"Cleaned up work dir: {work_dir}")
        except OSError as e:
            logger.warning(f"Cleanup failed for {work_dir}: {e}")

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    async def _render(
        self,
        config: AssemblyConfig,
        work_dir: Path,
        output_path: Path,
        report: "_Reporter",
        result: AssemblyResult,
    ) -> None:
        width, height = config.dimensions(self.settings.resolution)
        fps = config.fps or self.settings.fps
        total = len(config.scenes)

        # Downloading
        report(AssemblyPhase.DOWNLOADING, 5, "Downloading scene assets...")
        sources: List[Optional[Path]] = []
        for i, scene in enumerate(config.scenes):
            report(
                AssemblyPhase.DOWNLOADING,
                5 + int(i / total * 20),
                f"Downloading scene {i + 1}/{total}...",
                current_scene=i + 1,
            )
            sources.append(await self._fetch_scene(scene, i, work_dir, result))

        audio_paths: List[Tuple[Path, AudioTrack]] = []
        if config.audio_tracks:
            report(AssemblyPhase.DOWNLOADING, 25, "Downloading audio tracks...")
            for i, track in enumerate(config.audio_tracks):
                audio_path = await self._fetch_audio(track, i, work_dir, result)
                if audio_path is not None:
                    audio_paths.append((audio_path, track))

        # Processing
        report(AssemblyPhase.PROCESSING, 30, "Processing scene clips...")
        clips: List[Path] = []
        for i, scene in enumerate(config.scenes):
            report(
                AssemblyPhase.PROCESSING,
                30 + int(i / total * 30),
                f"Processing scene {i + 1}/{total}...",
                current_scene=i + 1,
            )
            clips.append(await self._process_scene(scene, sources[i], i, work_dir, width, height, fps, config, result))

        # Encoding: sequence
        report(AssemblyPhase.ENCODING, 60, "Assembling video sequence...")
        durations = [scene.duration for scene in config.scenes]
        raw_video = work_dir / "raw_video.mp4"
        crossfaded = await self._sequence(clips, config.scenes, raw_video, work_dir, result)
        expected_duration = timeline_duration(durations, self.settings.transition_duration, crossfaded)
        current = raw_video

        # Encoding: audio
        report(AssemblyPhase.ENCODING, 75, "Mixing audio tracks...")
        if audio_paths:
            current = await self._mix_audio(current, audio_paths, expected_duration, work_dir, result)

        # Finalizing
        if config.watermark and config.watermark.url:
            report(AssemblyPhase.FINALIZING, 85, "Adding watermark...")
            current = await self._apply_watermark(current, config.watermark, width, work_dir, result)

        report(AssemblyPhase.FINALIZING, 90, "Finalizing video...")
        ensure_dir(output_path.parent)
        await asyncio.to_thread(self.ffmpeg.run, [
            "-i", str(current),
            "-c:v", "libx264",
            "-preset", "medium",
            "-crf", str(self.settings.final_crf),
            "-c:a", "aac",
            "-b:a", self.settings.audio_bitrate,
            "-movflags", "+faststart",
            str(output_path),
        ], "final encode")

        probed = await asyncio.to_thread(self.ffmpeg.probe_duration, output_path)

        result.success = True
        result.output_path = str(output_path)
        result.duration = probed if probed else expected_duration
        result.file_size = get_file_size(output_path)

        report(AssemblyPhase.FINALIZING, 100, "Video assembly complete!")
        logger.info(
            f"Assembled {total} scenes into {output_path} "
            f"({result.duration:.1f}s, {len(result.warnings)} warnings)"
        )

    async def _fetch_scene(
        self,
        scene: SceneClip,
        index: int,
        work_dir: Path,
        result: AssemblyResult,
    ) -> Optional[Path]:
        source = scene.source_url
        if not source:
            _warn(result, f"Scene {index + 1} has no media, using filler")
            return None

        suffix = _suffix(source, ".mp4" if scene.video_url else ".jpg")
        target = work_dir / f"scene_{index}{suffix}"
        try:
            return await self._fetch(source, target)
        except (httpx.HTTPError, OSError, SecurityError) as e:
            _warn(result, f"Scene {index + 1} download failed, using filler: {e}")
            return None

    async def _fetch_audio(
        self,
        track: AudioTrack,
        index: int,
        work_dir: Path,
        result: AssemblyResult,
    ) -> Optional[Path]:
        if not track.url:
            return None

        raw = work_dir / f"audio_{index}_{track.type}_raw{'.mp4' if track.is_video_source else _suffix(track.url, '.mp3')}"
        try:
            await self._fetch(track.url, raw)
        except (httpx.HTTPError, OSError, SecurityError) as e:
            _warn(result, f"Audio track {index + 1} download failed: {e}")
            return None

        if not track.is_video_source:
            return raw

        extracted = work_dir / f"audio_{index}_{track.type}.mp3"
        try:
            await asyncio.to_thread(self.ffmpeg.run, [
                "-i", str(raw),
                "-vn",
                "-acodec", "libmp3lame",
                "-ar", "44100",
                "-ab", "128k",
                str(extracted),
            ], f"extract audio from track {index + 1}")
        except AssemblyError as e:
            _warn(result, f"Audio extraction failed for track {index + 1}: {e.message}")
            return None
        return extracted

    async def _process_scene(
        self,
        scene: SceneClip,
        source: Optional[Path],
        index: int,
        work_dir: Path,
        width: int,
        height: int,
        fps: int,
        config: AssemblyConfig,
        result: AssemblyResult,
    ) -> Path:
        if source is not None:
            clip = work_dir / f"clip_{index}.mp4"
            input_args = ["-loop", "1", "-i", str(source)] if scene.is_image else ["-i", str(source)]
            try:
                await asyncio.to_thread(self.ffmpeg.run, [
                    *input_args,
                    "-vf", scene_filter(scene, width, height, fps),
                    "-t", str(scene.duration),
                    "-r", str(fps),
                    "-an",
                    "-c:v", "libx264",
                    "-pix_fmt", "yuv420p",
                    "-preset", "medium",
                    str(clip),
                ], f"process scene {index + 1}")
                return clip
            except AssemblyError as e:
                _warn(result, f"Scene {index + 1} processing failed, using filler: {e.message}")

        return await self._filler_clip(scene, index, work_dir, width, height, fps, config)

    async def _filler_clip(
        self,
        scene: SceneClip,
        index: int,
        work_dir: Path,
        width: int,
        height: int,
        fps: int,
        config: AssemblyConfig,
    ) -> Path:
        color = config.background_color or self.settings.background_color
        filler = work_dir / f"filler_{index}.mp4"
        await asyncio.to_thread(self.ffmpeg.run, [
            "-f", "lavfi",
            "-i", f"color={color}:s={width}x{height}:d={scene.duration}",
            "-r", str(fps),
            "-c:v", "libx264",
            "-pix_fmt", "yuv420p",
            "-preset", "ultrafast",
            str(filler),
        ], f"filler clip for scene {index + 1}")
        return filler

    async def _sequence(
        self,
        clips: List[Path],
        scenes: Sequence[SceneClip],
        output: Path,
        work_dir: Path,
        result: AssemblyResult,
    ) -> bool:
        """Join clips; returns True when crossfades were applied."""
        if len(clips) == 1:
            await asyncio.to_thread(self.ffmpeg.run, ["-i", str(clips[0]), "-c", "copy", str(output)], "copy single clip")
            return False

        durations = [scene.duration for scene in scenes]
        graph = xfade_filter(durations, [scene.transition for scene in scenes], self.settings.transition_duration)
        inputs = [arg for clip in clips for arg in ("-i", str(clip))]
        try:
            await asyncio.to_thread(self.ffmpeg.run, [
                *inputs,
                "-filter_complex", graph,
                "-map", "[outv]",
                "-c:v", "libx264",
                "-pix_fmt", "yuv420p",
                "-preset", "medium",
                str(output),
            ], f"xfade {len(clips)} scenes")
            return True
        except AssemblyError as e:
            _warn(result, f"Transitions failed, using hard cuts: {e.message}")

        concat_file = work_dir / "concat.txt"
        async with aiofiles.open(concat_file, "w") as f:
            await f.write("\n".join(f"file '{clip.resolve()}'" for clip in clips))

        await asyncio.to_thread(self.ffmpeg.run, [
            "-f", "concat",
            "-safe", "0",
            "-i", str(concat_file),
            "-c:v", "libx264",
            "-pix_fmt", "yuv420p",
            "-preset", "medium",
            str(output),
        ], f"concatenate {len(clips)} scenes (cut)")
        return False

    async def _mix_audio(
        self,
        video: Path,
        tracks: List[Tuple[Path, AudioTrack]],
        video_duration: float,
        work_dir: Path,
        result: AssemblyResult,
    ) -> Path:
        output = work_dir / "with_audio.mp4"
        inputs = [arg for path, _ in tracks for arg in ("-i", str(path))]
        try:
            await asyncio.to_thread(self.ffmpeg.run, [
                "-i", str(video),
                *inputs,
                "-filter_complex", audio_mix_filter([track for _, track in tracks], video_duration),
                "-map", "0:v",
                "-map", "[aout]",
                "-c:v", "copy",
                "-c:a", "aac",
                "-shortest",
                str(output),
            ], f"mix {len(tracks)} audio tracks")
            return output
        except AssemblyError as e:
            _warn(result, f"Audio mixing failed, retrying with first track: {e.message}")

        try:
            await asyncio.to_thread(self.ffmpeg.run, [
                "-i", str(video),
                "-i", str(tracks[0][0]),
                "-map", "0:v",
                "-map", "1:a",
                "-c:v", "copy",
                "-c:a", "aac",
                "-shortest",
                str(output),
            ], "add first audio track")
            return output
        except AssemblyError as e:
            _warn(result, f"Audio failed, rendering video only: {e.message}")
            return video

    async def _apply_watermark(
        self,
        video: Path,
        watermark: WatermarkConfig,
        width: int,
        work_dir: Path,
        result: AssemblyResult,
    ) -> Path:
        image = work_dir / f"watermark{_suffix(watermark.url, '.png')}"
        try:
            await self._fetch(watermark.url, image, image_only=True)
        except (httpx.HTTPError, OSError, SecurityError) as e:
            _warn(result, f"Watermark unavailable, skipping: {e}")
            return video

        output = work_dir / "watermarked.mp4"
        try:
            await asyncio.to_thread(self.ffmpeg.run, [
                "-i", str(video),
                "-i", str(image),
                "-filter_complex", watermark_filter(watermark, width),
                "-c:v", "libx264",
                "-preset", "medium",
                "-c:a", "copy",
                str(output),
            ], f"watermark ({watermark.placement})")
            return output
        except AssemblyError as e:
            _warn(result, f"Watermark overlay failed, skipping: {e.message}")
            return video

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _create_work_dir(self) -> Path:
        root = Path(self.settings.work_dir) if self.settings.work_dir else Path(tempfile.gettempdir()) / "video-assembly"
        session = root / f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:6]}"
        return ensure_dir(session)

    def _validator(self) -> PathValidator:
        if self._path_validator is None:
            self._path_validator = PathValidator(self.settings.asset_root)
        return self._path_validator

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.download_timeout),
                follow_redirects=True,
            )
        return self._client

    async def _close_client(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _fetch(self, source: str, target: Path, image_only: bool = False) -> Path:
        """
        Copy a remote URL or a local asset into the work dir.

        URLs must point at public hosts; local paths must resolve inside
        ``asset_root``.

        Raises:
            httpx.HTTPError: On download failure
            SecurityError: On a private or loopback URL, or a local path outside the asset root
            OSError: On file errors
        """
        if is_http_url(source):
            validate_url(source)
            client = await self._get_client()
            async with client.stream("GET", source) as response:
                response.raise_for_status()
                async with aiofiles.open(target, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        await f.write(chunk)
            return target

        validator = self._validator()
        local = validator.validate_image(source) if image_only else validator.validate(source)
        if not local.is_file():
            raise FileNotFoundError(f"Asset not found: {local.name}")
        await asyncio.to_thread(shutil.copyfile, local, target)
        return target


class AssemblyStream:
    """Async iterator over a render's progress; ``result`` is set once it finishes."""

    def __init__(self, engine: AssemblyEngine, config: AssemblyConfig, maxsize: int = 64):
        self.engine = engine
        self.config = config
        self.channel = ProgressChannel(maxsize)
        self.result: Optional[AssemblyResult] = None
        self._task: Optional[asyncio.Task] = None

    def _start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self._run())
        return self._task

    async def _run(self) -> AssemblyResult:
        try:
            self.result = await self.engine.assemble(self.config, on_progress=self.channel.publish)
            return self.result
        finally:
            self.channel.close()

    async def __aiter__(self):
        task = self._start()
        async for event in self.channel.events():
            yield event
        await task

    async def wait(self) -> AssemblyResult:
        """Wait for the render to finish, discarding any unread progress."""
        return await self._start()


class _Reporter:
    def __init__(self, callback: Optional[ProgressCallback], total_scenes: int):
        self.callback = callback
        self.total_scenes = total_scenes

    def __call__(
        self,
        phase: AssemblyPhase,
        progress: int,
        message: str,
        current_scene: Optional[int] = None,
    ) -> None:
        logger.debug(f"[{phase.value}] {progress}% {message}")
        if self.callback is None:
            return
        try:
            self.callback(AssemblyProgress(
                phase=phase,
                progress=progress,
                message=message,
                current_scene=current_scene,
                total_scenes=self.total_scenes,
            ))
        except Exception:
            logger.exception("Progress callback failed")


def _warn(result: AssemblyResult, message: str) -> None:
    logger.warning(message)
    result.warnings.append(message)


def _suffix(source: str, default: str) -> str:
    suffix = PurePosixPath(urlparse(source).path).suffix.lower()
    return suffix if suffix and len(suffix) <= 5 else default
