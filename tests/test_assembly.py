"""Unit tests for the assembly engine.

All tests mock subprocess.run so no actual FFmpeg execution occurs. The fake
writes a few bytes to the output path (the last argument) of every ffmpeg
command so later stages find their inputs.
"""

import asyncio
import json
import subprocess
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from video_pipeline.core.config import AssemblySettings
from video_pipeline.core.exceptions import AssemblyError, ValidationError
from video_pipeline.assembly import (
    AssemblyConfig,
    AssemblyEngine,
    AssemblyPhase,
    AssemblyProgress,
    AudioTrack,
    FFmpegRunner,
    ProgressChannel,
    SceneClip,
    WatermarkConfig,
    audio_mix_filter,
    timeline_duration,
    xfade_filter,
    xfade_offsets,
)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeFFmpeg:
    """Records commands; ``fail_on`` substrings make matching commands exit 1."""

    def __init__(self, available=True, fail_on=(), probe_duration=None):
        self.available = available
        self.fail_on = list(fail_on)
        self.probe = probe_duration
        self.commands = []

    def __call__(self, cmd, **kwargs):
        self.commands.append(cmd)
        joined = " ".join(cmd)

        if cmd[1:] == ["-version"]:
            return subprocess.CompletedProcess(cmd, 0 if self.available else 1, stdout="ffmpeg version 6.1", stderr="")

        if cmd[0] == "ffprobe":
            if self.probe is None:
                return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="probe failed")
            stdout = json.dumps({"format": {"duration": str(self.probe)}})
            return subprocess.CompletedProcess(cmd, 0, stdout=stdout, stderr="")

        if any(marker in joined for marker in self.fail_on):
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="Error: filter failed")

        Path(cmd[-1]).write_bytes(b"\x00" * 2048)
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def matching(self, marker):
        return [cmd for cmd in self.commands if marker in " ".join(cmd)]


def media_handler(missing=()):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path in missing:
            return httpx.Response(404)
        return httpx.Response(200, content=b"media-bytes")

    return handler


@pytest.fixture
def make_engine(temp_dir, mock_client):
    def factory(handler=None, **settings):
        settings.setdefault("work_dir", str(temp_dir / "work"))
        settings.setdefault("asset_root", str(temp_dir / "assets"))
        return AssemblyEngine(
            AssemblySettings(**settings),
            client=mock_client(handler or media_handler()),
        )

    return factory


def three_scenes():
    return [
        SceneClip(duration=4, video_url="https://cdn.example.com/hook.mp4"),
        SceneClip(duration=5, image_url="https://cdn.example.com/product.jpg", text="Fresh daily"),
        SceneClip(duration=4, video_url="https://cdn.example.com/cta.mp4", transition="dissolve"),
    ]


# ---------------------------------------------------------------------------
# Filter builders
# ---------------------------------------------------------------------------


class TestFilters:
    def test_xfade_offsets(self):
        assert xfade_offsets([4, 5, 4], 0.5) == [3.5, 8.0]

    def test_xfade_offsets_clamped(self):
        assert xfade_offsets([0.2, 3], 0.5) == [0.0]

    def test_xfade_filter_chain(self):
        graph = xfade_filter([4, 5, 4], ["fade", "wipe", "dissolve"], 0.5)
        assert graph == (
            "[0:v][1:v]xfade=transition=wipeleft:duration=0.5:offset=3.5[v1];"
            "[v1][2:v]xfade=transition=dissolve:duration=0.5:offset=8.0[outv]"
        )

    def test_audio_mix_filter(self):
        tracks = [
            AudioTrack(url="https://cdn.example.com/music.mp3", volume=50, fade_in=1, fade_out=2),
            AudioTrack(url="https://cdn.example.com/vo.mp3", type="voiceover"),
        ]
        graph = audio_mix_filter(tracks, 12.0)
        assert graph == (
            "[1:a]volume=0.5,afade=t=in:st=0:d=1,afade=t=out:st=10.0:d=2[a0];"
            "[2:a]volume=0.8[a1];"
            "[a0][a1]amix=inputs=2:duration=first[aout]"
        )

    def test_timeline_duration(self):
        assert timeline_duration([4, 5, 4], 0.5, crossfaded=False) == 13.0
        assert timeline_duration([4, 5, 4], 0.5, crossfaded=True) == 12.0
        assert timeline_duration([4], 0.5, crossfaded=True) == 4.0


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class TestModels:
    def test_scene_duration_must_be_positive(self):
        with pytest.raises(ValidationError):
            SceneClip(duration=0, video_url="https://cdn.example.com/a.mp4")

    def test_unknown_transition_and_position_normalized(self):
        scene = SceneClip(duration=3, transition="spin", text_position="left")
        assert scene.transition == "fade"
        assert scene.text_position == "bottom"

    def test_audio_video_source(self):
        assert AudioTrack(url="https://videos.pexels.com/clip").is_video_source
        assert AudioTrack(url="https://cdn.example.com/ambience.mov").is_video_source
        assert not AudioTrack(url="https://cdn.example.com/music.mp3").is_video_source

    def test_audio_gain_default(self):
        assert AudioTrack(url="a.mp3").gain == 0.8
        assert AudioTrack(url="a.mp3", volume=25).gain == 0.25

    def test_zero_volume_mutes_track(self):
        track = AudioTrack(url="a.mp3", volume=0)
        assert track.gain == 0.0
        assert audio_mix_filter([track], 10.0).startswith("[1:a]volume=0.0[a0]")

    def test_explicit_zero_watermark_values(self):
        watermark = WatermarkConfig(url="logo.png", opacity=0, size=0)
        assert watermark.effective_opacity == 0.0
        assert watermark.scaled_width(1920) == 1
        assert WatermarkConfig(url="logo.png", size=5).scaled_width(1920) == 96

    def test_watermark_defaults(self):
        watermark = WatermarkConfig(url="logo.png")
        assert watermark.scaled_width(1920) == 288
        assert watermark.effective_opacity == 0.8
        assert watermark.position == "x=W-w-20:y=H-h-20"

    def test_invalid_resolution(self):
        with pytest.raises(ValidationError):
            AssemblyConfig(scenes=[], resolution="hd").dimensions()

    def test_from_dict(self):
        config = AssemblyConfig.from_dict({
            "scenes": [{"duration": 4, "video_url": "https://cdn.example.com/a.mp4"}],
            "audio_tracks": [{"url": "https://cdn.example.com/m.mp3", "volume": 60}],
            "watermark": {"url": "logo.png", "placement": "top-left"},
            "resolution": "1080x1920",
        })
        assert config.dimensions() == (1080, 1920)
        assert config.audio_tracks[0].gain == 0.6
        assert config.watermark.placement == "top-left"
        assert config.total_duration == 4


# ---------------------------------------------------------------------------
# Progress channel
# ---------------------------------------------------------------------------


def event(progress):
    return AssemblyProgress(phase=AssemblyPhase.ENCODING, progress=progress, message="")


class TestProgressChannel:
    async def test_drops_oldest_when_full(self):
        channel = ProgressChannel(maxsize=2)
        for progress in (10, 20, 30):
            channel.publish(event(progress))
        channel.close()

        received = [e.progress async for e in channel.events()]
        assert received == [20, 30]
        assert channel.dropped == 1

    async def test_publish_after_close_ignored(self):
        channel = ProgressChannel()
        channel.close()
        channel.publish(event(50))
        assert len(channel) == 0

    async def test_consumer_waits_for_events(self):
        channel = ProgressChannel()

        async def produce():
            await asyncio.sleep(0.01)
            channel.publish(event(60))
            channel.close()

        producer = asyncio.create_task(produce())
        received = [e.progress async for e in channel.events()]
        await producer
        assert received == [60]

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            ProgressChannel(maxsize=0)


# ---------------------------------------------------------------------------
# FFmpeg runner
# ---------------------------------------------------------------------------


class TestFFmpegRunner:
    def test_nonzero_exit_raises(self, temp_dir):
        fake = FakeFFmpeg(fail_on=["broken"])
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=fake):
            with pytest.raises(AssemblyError) as exc_info:
                FFmpegRunner().run(["-i", "broken.mp4", str(temp_dir / "out.mp4")], "encode")
        assert exc_info.value.details["stage"] == "encode"
        assert "filter failed" in exc_info.value.details["stderr"]

    def test_timeout_raises(self):
        with patch(
            "video_pipeline.assembly.ffmpeg.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="ffmpeg", timeout=5),
        ):
            with pytest.raises(AssemblyError, match="timed out"):
                FFmpegRunner(timeout=5).run(["-i", "in.mp4", "out.mp4"], "encode")

    def test_missing_binary(self):
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=FileNotFoundError("ffmpeg")):
            assert not FFmpegRunner().is_available()

    def test_command_prefix(self, temp_dir):
        fake = FakeFFmpeg()
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=fake):
            FFmpegRunner(ffmpeg_path="/opt/ffmpeg").run(["-i", "in.mp4", str(temp_dir / "out.mp4")])
        assert fake.commands[0][:2] == ["/opt/ffmpeg", "-y"]

    def test_probe_duration(self):
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=FakeFFmpeg(probe_duration=12.48)):
            assert FFmpegRunner().probe_duration("out.mp4") == 12.48

    def test_probe_unreadable_output(self):
        bad = subprocess.CompletedProcess([], 0, stdout="not json", stderr="")
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", return_value=bad):
            assert FFmpegRunner().probe_duration("out.mp4") is None


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class TestAssemble:
    async def test_crossfaded_render(self, make_engine):
        fake = FakeFFmpeg()
        engine = make_engine()
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=fake):
            result = await engine.assemble(AssemblyConfig(scenes=three_scenes()))

        assert result.success, result.error
        assert result.warnings == []
        assert result.duration == 12.0
        assert result.file_size == 2048
        assert Path(result.output_path).name == "output.mp4"
        assert result.work_dir is not None

        xfade = fake.matching("xfade=")
        assert len(xfade) == 1
        assert "[outv]" in " ".join(xfade[0])
        assert fake.matching("zoompan=")
        assert fake.matching("drawtext=text='Fresh daily'")
        final = fake.matching("+faststart")[0]
        assert final[final.index("-crf") + 1] == "23"

    async def test_probed_duration_preferred(self, make_engine):
        engine = make_engine()
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=FakeFFmpeg(probe_duration=11.96)):
            result = await engine.assemble(AssemblyConfig(scenes=three_scenes()))
        assert result.duration == 11.96

    async def test_missing_scene_uses_filler(self, make_engine):
        fake = FakeFFmpeg()
        engine = make_engine(media_handler(missing={"/hook.mp4"}))
        scenes = [
            SceneClip(duration=5, video_url="https://cdn.example.com/hook.mp4"),
            SceneClip(duration=4, video_url="https://cdn.example.com/cta.mp4"),
        ]
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=fake):
            result = await engine.assemble(AssemblyConfig(scenes=scenes))

        assert result.success
        assert any(w.startswith("Scene 1 download failed, using filler") for w in result.warnings)
        assert fake.matching("color=black:s=1920x1080:d=5")

    async def test_scene_without_media_uses_filler(self, make_engine):
        fake = FakeFFmpeg()
        engine = make_engine()
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=fake):
            result = await engine.assemble(AssemblyConfig(scenes=[SceneClip(duration=3)], background_color="white"))

        assert result.success
        assert result.warnings == ["Scene 1 has no media, using filler"]
        assert fake.matching("color=white:s=1920x1080:d=3")

    async def test_transition_failure_falls_back_to_cuts(self, make_engine):
        fake = FakeFFmpeg(fail_on=["xfade="])
        engine = make_engine()
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=fake):
            result = await engine.assemble(AssemblyConfig(scenes=three_scenes()))

        assert result.success
        assert any(w.startswith("Transitions failed, using hard cuts") for w in result.warnings)
        assert fake.matching("-f concat -safe 0")
        assert result.duration == 13.0

    async def test_single_scene_copied(self, make_engine):
        fake = FakeFFmpeg()
        engine = make_engine()
        scenes = [SceneClip(duration=4, video_url="https://cdn.example.com/hook.mp4")]
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=fake):
            result = await engine.assemble(AssemblyConfig(scenes=scenes))

        assert result.success
        assert fake.matching("-c copy")
        assert not fake.matching("xfade=")
        assert result.duration == 4.0

    async def test_audio_mix_falls_back_to_first_track(self, make_engine):
        fake = FakeFFmpeg(fail_on=["amix="])
        engine = make_engine()
        config = AssemblyConfig(
            scenes=three_scenes(),
            audio_tracks=[
                AudioTrack(url="https://cdn.example.com/music.mp3", fade_out=2),
                AudioTrack(url="https://cdn.example.com/vo.mp3", type="voiceover"),
            ],
        )
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=fake):
            result = await engine.assemble(config)

        assert result.success
        assert any("retrying with first track" in w for w in result.warnings)
        assert fake.matching("-map 1:a")

    async def test_audio_extracted_from_video_source(self, make_engine):
        fake = FakeFFmpeg()
        engine = make_engine()
        config = AssemblyConfig(
            scenes=three_scenes(),
            audio_tracks=[AudioTrack(url="https://videos.pexels.com/video-files/ambience.mp4")],
        )
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=fake):
            result = await engine.assemble(config)

        assert result.success
        assert fake.matching("-acodec libmp3lame")

    async def test_watermark_failure_skipped(self, make_engine):
        fake = FakeFFmpeg()
        engine = make_engine(media_handler(missing={"/logo.png"}))
        config = AssemblyConfig(
            scenes=three_scenes(),
            watermark=WatermarkConfig(url="https://cdn.example.com/logo.png"),
        )
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=fake):
            result = await engine.assemble(config)

        assert result.success
        assert any(w.startswith("Watermark unavailable") for w in result.warnings)
        assert not fake.matching("overlay=")

    async def test_watermark_applied(self, make_engine):
        fake = FakeFFmpeg()
        engine = make_engine()
        config = AssemblyConfig(
            scenes=three_scenes(),
            watermark=WatermarkConfig(url="https://cdn.example.com/logo.png", placement="top-left", size=10),
        )
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=fake):
            result = await engine.assemble(config)

        assert result.success
        overlay = fake.matching("overlay=x=20:y=20")
        assert overlay
        assert "scale=192:-1" in " ".join(overlay[0])

    async def test_local_asset_outside_root_rejected(self, make_engine, temp_dir):
        outside = temp_dir / "secret.mp4"
        outside.write_bytes(b"\x00")
        fake = FakeFFmpeg()
        engine = make_engine()
        scenes = [SceneClip(duration=3, video_url=str(outside))]
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=fake):
            result = await engine.assemble(AssemblyConfig(scenes=scenes))

        assert result.success
        assert result.warnings[0].startswith("Scene 1 download failed, using filler")

    async def test_private_network_url_not_downloaded(self, make_engine):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, content=b"media-bytes")

        fake = FakeFFmpeg()
        engine = make_engine(handler)
        scenes = [
            SceneClip(duration=3, video_url="http://127.0.0.1:8080/internal.mp4"),
            SceneClip(duration=3, image_url="http://192.168.1.10/admin.png"),
        ]
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=fake):
            result = await engine.assemble(AssemblyConfig(scenes=scenes))

        assert result.success
        assert seen == []
        assert any(w.startswith("Scene 1 download failed, using filler") for w in result.warnings)
        assert any(w.startswith("Scene 2 download failed, using filler") for w in result.warnings)

    async def test_local_asset_inside_root(self, make_engine, temp_dir):
        assets = temp_dir / "assets"
        assets.mkdir()
        (assets / "hook.mp4").write_bytes(b"\x00" * 10)
        fake = FakeFFmpeg()
        engine = make_engine()
        scenes = [SceneClip(duration=3, video_url=str(assets / "hook.mp4"))]
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=fake):
            result = await engine.assemble(AssemblyConfig(scenes=scenes))

        assert result.success
        assert result.warnings == []

    async def test_ffmpeg_unavailable(self, make_engine):
        engine = make_engine()
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=FakeFFmpeg(available=False)):
            result = await engine.assemble(AssemblyConfig(scenes=three_scenes()))

        assert not result.success
        assert result.error == "FFmpeg not available"

    async def test_no_scenes(self, make_engine):
        engine = make_engine()
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=FakeFFmpeg()):
            result = await engine.assemble(AssemblyConfig(scenes=[]))

        assert not result.success
        assert result.error == "No scenes to assemble"

    async def test_final_encode_failure_cleans_up(self, make_engine, temp_dir):
        engine = make_engine()
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=FakeFFmpeg(fail_on=["+faststart"])):
            result = await engine.assemble(AssemblyConfig(scenes=three_scenes()))

        assert not result.success
        assert "final encode" in result.error
        assert result.work_dir is None
        assert list((temp_dir / "work").iterdir()) == []

    async def test_explicit_output_path(self, make_engine, temp_dir):
        output = temp_dir / "renders" / "promo.mp4"
        engine = make_engine()
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=FakeFFmpeg()):
            result = await engine.assemble(AssemblyConfig(scenes=three_scenes(), output_path=str(output)))

        assert result.success
        assert result.output_path == str(output)
        assert output.exists()
        assert result.work_dir is None

    async def test_progress_callback(self, make_engine):
        events = []
        engine = make_engine()
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=FakeFFmpeg()):
            await engine.assemble(AssemblyConfig(scenes=three_scenes()), on_progress=events.append)

        progress = [e.progress for e in events]
        assert progress[0] == 0
        assert progress[-1] == 100
        assert progress == sorted(progress)
        assert events[-1].phase == AssemblyPhase.FINALIZING
        assert all(e.total_scenes == 3 for e in events)

    async def test_failing_callback_does_not_abort(self, make_engine):
        def explode(_event):
            raise RuntimeError("listener crashed")

        engine = make_engine()
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=FakeFFmpeg()):
            result = await engine.assemble(AssemblyConfig(scenes=three_scenes()), on_progress=explode)
        assert result.success

    async def test_stream(self, make_engine):
        engine = make_engine()
        with patch("video_pipeline.assembly.ffmpeg.subprocess.run", side_effect=FakeFFmpeg()):
            stream = engine.stream(AssemblyConfig(scenes=three_scenes()), maxsize=64)
            events = [e async for e in stream]

        assert events[0].phase == AssemblyPhase.PREPARING
        assert events[-1].progress == 100
        assert stream.result.success
