"""
Tests for variant planning and thumbnail placement.
"""

import pytest

from ladderstream.transcoding.constants import QUALITY_LADDER
from ladderstream.transcoding.engine import thumbnail_timestamps
from ladderstream.transcoding.planner import fit_within, plan_variants


class TestPlanVariants:
    """Which renditions a source gets."""

    def test_1080p_source_gets_full_ladder(self):
        variants = plan_variants(1920, 1080, 120.0)
        assert [v.name for v in variants] == ["360p", "480p", "720p", "1080p"]

    def test_720p_source_stops_at_720p(self):
        variants = plan_variants(1280, 720, 60.0)
        assert [v.name for v in variants] == ["360p", "480p", "720p"]

    def test_small_source_gets_single_fallback(self):
        variants = plan_variants(480, 360, 30.0)
        assert len(variants) == 1
        fallback = variants[0]
        assert fallback.name == "auto"
        assert (fallback.width, fallback.height) == (480, 360)

    def test_tiny_source_never_upscaled(self):
        variants = plan_variants(320, 240, 5.0)
        assert len(variants) == 1
        assert variants[0].width <= 320
        assert variants[0].height <= 240

    def test_narrow_source_skips_rungs_it_cannot_fill(self):
        # Tall enough for 480p but not wide enough
        variants = plan_variants(700, 500, 10.0)
        assert [v.name for v in variants] == ["360p"]

    def test_4_3_source_loses_rungs_it_cannot_fill(self):
        # 720 lines tall but 1280 wide is needed for 720p
        variants = plan_variants(960, 720, 10.0)
        assert [v.name for v in variants] == ["360p", "480p"]

    def test_portrait_source_limited_by_width(self):
        variants = plan_variants(1080, 1920, 10.0)
        assert [v.name for v in variants] == ["360p", "480p"]

    def test_4k_source_caps_at_1080p(self):
        variants = plan_variants(3840, 2160, 10.0)
        assert variants[-1].name == "1080p"
        assert len(variants) == len(QUALITY_LADDER)

    def test_unknown_dimensions_still_yield_a_variant(self):
        variants = plan_variants(0, 0, 0.0)
        assert len(variants) == 1
        assert variants[0].width % 2 == 0
        assert variants[0].height % 2 == 0

    @pytest.mark.parametrize("width,height", [
        (320, 240), (640, 360), (854, 480), (1280, 720), (1920, 1080), (2560, 1440),
    ])
    def test_never_empty(self, width, height):
        assert len(plan_variants(width, height, 10.0)) >= 1

    def test_monotonic_in_source_height(self):
        previous = 0
        for height in range(144, 2200, 16):
            width = height * 16 // 9
            count = len(plan_variants(width, height, 10.0))
            assert count >= previous
            previous = count

    def test_variants_ordered_by_bitrate(self):
        variants = plan_variants(1920, 1080, 10.0)
        bitrates = [v.target_bitrate_kbps for v in variants]
        assert bitrates == sorted(bitrates)

    def test_rate_control_derived_from_bitrate(self):
        variant = plan_variants(1280, 720, 10.0)[-1]
        assert variant.target_bitrate_kbps == 2500
        assert variant.maxrate_kbps == 3750
        assert variant.bufsize_kb == 5000
        assert variant.bandwidth_bps == 3_750_000
        assert variant.average_bandwidth_bps == 2_500_000
        assert variant.resolution == "1280x720"

    def test_frame_rate_capped_at_30(self):
        assert plan_variants(1920, 1080, 10.0, framerate=60.0)[0].fps == 30.0
        assert plan_variants(1920, 1080, 10.0, framerate=23.976)[0].fps == 23.976
        assert plan_variants(1920, 1080, 10.0, framerate=None)[0].fps == 30.0


class TestFitWithin:

    def test_scales_down_keeping_aspect(self):
        assert fit_within(1920, 1080, 640, 360) == (640, 360)

    def test_portrait_source(self):
        width, height = fit_within(1080, 1920, 640, 360)
        assert height == 360
        assert width == 202

    def test_never_upscales(self):
        assert fit_within(320, 240, 640, 360) == (320, 240)

    def test_odd_dimensions_made_even(self):
        width, height = fit_within(641, 361, 1000, 1000)
        assert (width, height) == (640, 360)


class TestThumbnailTimestamps:

    def test_evenly_spaced_inside_duration(self):
        stamps = thumbnail_timestamps(100.0, 5)
        assert stamps == pytest.approx([100 / 6 * i for i in range(1, 6)])
        assert stamps[0] == pytest.approx(16.6667, rel=1e-4)
        assert stamps[-1] == pytest.approx(83.3333, rel=1e-4)

    def test_strictly_inside_bounds(self):
        stamps = thumbnail_timestamps(7.5, 3)
        assert all(0 < t < 7.5 for t in stamps)
        assert stamps == sorted(stamps)

    def test_zero_count(self):
        assert thumbnail_timestamps(100.0, 0) == []

    def test_unknown_duration(self):
        assert thumbnail_timestamps(0.0, 5) == []
