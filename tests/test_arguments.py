"""Tests for yt-dlp command line synthesis"""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from dba_downloader.core.arguments import format_args, synthesize, time_range_args
from dba_downloader.models.download import (
    AudioTrack,
    DownloadRequest,
    QualityTier,
    TimeRange,
    ToolSet,
)

AUDIO_TRACK = AudioTrack(
    code="en", display_name="English", format_id="140", is_audio_only=True
)
COMBINED_TRACK = AudioTrack(
    code="de", display_name="Deutsch", format_id="233", is_audio_only=False, bitrate=96
)


@pytest.fixture
def fixed_tools() -> ToolSet:
    root = Path("/opt/dba/bin")
    return ToolSet(
        root=root,
        engine=root / "yt-dlp",
        remuxer=root / "ffmpeg",
        runtime=root / "deno",
        runtime_available=True,
    )


def _request(**kwargs) -> DownloadRequest:
    kwargs.setdefault("source_url", "https://video.test/watch?v=1")
    kwargs.setdefault("output_dir", Path("/tmp/out"))
    return DownloadRequest(**kwargs)


def _value_after(args, flag):
    return args[args.index(flag) + 1]


class TestFormatSelection:
    def test_video_without_track(self):
        args = format_args(_request(quality=QualityTier.P720))
        assert _value_after(args, "-f") == (
            "bestvideo[height<=720]+bestaudio[ext=m4a]/bestvideo[height<=720]"
            "+bestaudio/best[height<=720]/best"
        )
        assert _value_after(args, "--merge-output-format") == "mp4"
        assert _value_after(args, "--postprocessor-args") == (
            "Merger+ffmpeg_o:-c:v copy -c:a aac -b:a 192k"
        )

    def test_video_with_audio_only_track(self):
        args = format_args(_request(quality=QualityTier.P480, selected_track=AUDIO_TRACK))
        assert _value_after(args, "-f") == (
            "bestvideo[height<=480]+140/bestvideo[height<=480]+bestaudio"
            "/best[height<=480]/best"
        )
        assert _value_after(args, "--merge-output-format") == "mp4"
        assert "--postprocessor-args" in args

    def test_video_with_combined_track(self):
        args = format_args(
            _request(quality=QualityTier.P1080, selected_track=COMBINED_TRACK)
        )
        assert _value_after(args, "-f") == (
            "best[height<=1080][language=de]/best[height<=1080]/best"
        )
        assert _value_after(args, "--remux-video") == "mp4"
        assert "--merge-output-format" not in args
        assert "--postprocessor-args" not in args

    def test_audio_with_audio_only_track(self):
        args = format_args(_request(quality=QualityTier.AUDIO, selected_track=AUDIO_TRACK))
        assert args == ["-f", "140", "-x", "--audio-format", "mp3"]

    def test_audio_without_track(self):
        args = format_args(_request(quality=QualityTier.AUDIO))
        assert args == ["-f", "bestaudio/best", "-x", "--audio-format", "mp3"]

    def test_audio_with_combined_track_uses_best(self):
        args = format_args(
            _request(quality=QualityTier.AUDIO, selected_track=COMBINED_TRACK)
        )
        assert _value_after(args, "-f") == "bestaudio/best"

    def test_custom_merge_bitrate(self):
        args = format_args(_request(quality=QualityTier.P360), audio_bitrate="128k")
        assert _value_after(args, "--postprocessor-args").endswith("-b:a 128k")


class TestTimeRange:
    def test_start_and_end(self):
        args = time_range_args(TimeRange(start="00:01:30", end="00:02:00"))
        assert args == [
            "--downloader",
            "ffmpeg",
            "--downloader-args",
            "ffmpeg_i:-ss 00:01:30",
            "--download-sections",
            "*00:01:30-00:02:00",
        ]

    def test_end_only_defaults_start(self):
        args = time_range_args(TimeRange(end="00:02:00"))
        assert _value_after(args, "--downloader-args") == "ffmpeg_i:-ss 00:00:00"
        assert _value_after(args, "--download-sections") == "*00:00:00-00:02:00"

    def test_start_only_has_no_section(self):
        args = time_range_args(TimeRange(start="00:00:45"))
        assert _value_after(args, "--downloader-args") == "ffmpeg_i:-ss 00:00:45"
        assert "--download-sections" not in args

    def test_no_range(self):
        assert time_range_args(None) == []

    def test_short_forms_are_normalized(self):
        time_range = TimeRange(start="1:30", end="2:00")
        assert time_range.start == "00:01:30"
        assert time_range.end == "00:02:00"

    @pytest.mark.parametrize(
        "start,end",
        [("00:02:00", "00:01:00"), ("00:01:00", "00:01:00"), ("aa:bb", None), (None, None)],
    )
    def test_invalid_ranges(self, start, end):
        with pytest.raises(ValidationError):
            TimeRange(start=start, end=end)


class TestSynthesize:
    def test_full_invocation(self, fixed_tools):
        request = _request(
            quality=QualityTier.P720,
            time_range=TimeRange(start="00:01:30", end="00:02:00"),
        )
        invocation = synthesize(request, fixed_tools)
        args = list(invocation.args)

        assert invocation.executable == fixed_tools.engine
        assert args[:4] == [
            "--newline",
            "--progress",
            "--progress-template",
            "%(progress._percent_str)s",
        ]
        assert _value_after(args, "--ffmpeg-location") == str(fixed_tools.remuxer)
        assert _value_after(args, "--js-runtimes") == f"deno:{fixed_tools.runtime}"
        assert _value_after(args, "--download-sections") == "*00:01:30-00:02:00"
        assert _value_after(args, "-o") == os.path.join("/tmp/out", "%(title)s.%(ext)s")
        assert args[-2:] == ["--", "https://video.test/watch?v=1"]
        assert invocation.argv[0] == str(fixed_tools.engine)

    def test_runtime_flag_omitted_when_unavailable(self, fixed_tools):
        fixed_tools.runtime_available = False
        args = synthesize(_request(), fixed_tools).args
        assert "--js-runtimes" not in args

    def test_deterministic(self, fixed_tools):
        request = _request(
            quality=QualityTier.P240,
            selected_track=AUDIO_TRACK,
            time_range=TimeRange(end="00:00:10"),
        )
        first = synthesize(request, fixed_tools)
        second = synthesize(request, fixed_tools)
        assert first == second
        assert first.argv == second.argv

    def test_does_not_create_output_dir(self, fixed_tools, tmp_path):
        out_dir = tmp_path / "not-created"
        synthesize(_request(output_dir=out_dir), fixed_tools)
        assert not out_dir.exists()

    def test_dash_url_cannot_become_an_option(self, fixed_tools):
        args = synthesize(_request(source_url="--exec=touch /tmp/x"), fixed_tools).args
        assert args[-2:] == ("--", "--exec=touch /tmp/x")
        assert args.count("--exec=touch /tmp/x") == 1
