"""
FFmpeg Runner
=============

Thin synchronous wrapper around the ffmpeg and ffprobe binaries. The
assembly engine calls it from worker threads.
"""

import json
import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Union

from ..core.exceptions import AssemblyError

logger = logging.getLogger(__name__)


class FFmpegRunner:
    """Runs ffmpeg/ffprobe commands and maps failures to ``AssemblyError``."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        timeout: int = 600,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    def is_available(self) -> bool:
        """True when ``ffmpeg -version`` runs successfully."""
        try:
            result = subprocess.run(
                [self.ffmpeg_path, "-version"],
                capture_output=True,
                text=True,
                timeout=30,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.error(f"FFmpeg not available: {e}")
            return False
        return result.returncode == 0

    def run(self, args: List[str], description: str = "") -> None:
        """
        Run ffmpeg with ``-y`` and the given arguments.

        Args:
            args: Arguments after ``ffmpeg -y``
            description: Human-readable description for logging

        Raises:
            AssemblyError: If ffmpeg cannot start, times out or exits non-zero
        """
        cmd = [self.ffmpeg_path, "-y", *args]
        logger.info(f"FFmpeg: {description}")
        logger.debug(f"Command: {' '.join(cmd)}")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            raise AssemblyError(f"FFmpeg timed out after {self.timeout}s ({description})", stage=description)
        except OSError as e:
            raise AssemblyError(f"FFmpeg could not start ({description}): {e}", stage=description)

        if result.returncode != 0:
            logger.error(f"FFmpeg stderr: {result.stderr[-1000:]}")
            raise AssemblyError(
                f"FFmpeg failed ({description}): {result.stderr[:500]}",
                stage=description,
                stderr=result.stderr,
            )

    def probe_duration(self, path: Union[str, Path]) -> Optional[float]:
        """Duration of a media file in seconds, or None if ffprobe fails."""
        cmd = [
            self.ffprobe_path,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "json",
            str(path),
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=30)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"ffprobe failed for {path}: {e}")
            return None

        if result.returncode != 0:
            logger.warning(f"ffprobe failed for {path}: {result.stderr[:200]}")
            return None

        try:
            return float(json.loads(result.stdout)["format"]["duration"])
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Unreadable ffprobe output for {path}: {e}")
            return None
