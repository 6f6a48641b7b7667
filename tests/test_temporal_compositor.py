"""
时间合成处理器单元测试
"""
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from conftest import GRID_X, make_scene
from lst_pipeline.services.errors import EmptySceneSetError, GridMismatchError
from lst_pipeline.services.temporal_compositor import (
    TemporalCompositor,
    parse_date,
    to_utc,
)


def reflectance(dn):
    return dn * 0.0000275 - 0.2


@pytest.fixture
def compositor():
    """创建 TemporalCompositor 实例"""
    return TemporalCompositor()


@pytest.fixture
def cloudy_pair(acquired):
    """同一天两景影像，云覆盖互不重叠"""
    scene_a = make_scene(
        "LC08_027039_20200701",
        acquired,
        red=((10000, 11000), (12000, 13000)),
        qa=((0, 8), (0, 32)),
    )
    scene_b = make_scene(
        "LC08_027040_20200701",
        acquired + timedelta(seconds=24),
        red=((14000, 15000), (16000, 17000)),
        qa=((0, 0), (32, 40)),
    )
    return scene_a, scene_b


class TestDateHelpers:
    """日期辅助函数测试"""

    def test_parse_date_string(self):
        assert parse_date("2020-07-01") == datetime(2020, 7, 1, tzinfo=timezone.utc)

    def test_parse_date_truncates_time(self, acquired):
        assert parse_date(acquired) == datetime(2020, 7, 1, tzinfo=timezone.utc)

    def test_naive_datetime_is_utc(self):
        assert to_utc(datetime(2020, 7, 1, 12)).tzinfo == timezone.utc

    def test_invalid_date_string(self):
        with pytest.raises(ValueError):
            parse_date("07/01/2020")


class TestSelectScenes:
    """按日期选取影像测试"""

    def test_half_open_day_window(self, compositor):
        midnight = datetime(2020, 7, 1, tzinfo=timezone.utc)
        scenes = [
            make_scene("before", midnight - timedelta(microseconds=1)),
            make_scene("start", midnight),
            make_scene("late", midnight + timedelta(hours=23, minutes=59)),
            make_scene("next", midnight + timedelta(days=1)),
        ]

        selected = compositor.select_scenes_for_date(scenes, "2020-07-01")

        assert [s.scene_id for s in selected] == ["start", "late"]

    def test_sorted_by_acquisition_time(self, compositor, cloudy_pair):
        scene_a, scene_b = cloudy_pair

        selected = compositor.select_scenes_for_date([scene_b, scene_a], "2020-07-01")

        assert [s.scene_id for s in selected] == [scene_a.scene_id, scene_b.scene_id]


class TestCompositeDaily:
    """日合成测试"""

    def test_median_respects_cloud_mask(self, compositor, cloudy_pair, austin_aoi):
        composite = compositor.composite_daily(list(cloudy_pair), "2020-07-01", austin_aoi)

        red = composite["SR_B4"].values
        # 两景都有效: 中值即均值
        assert red[0, 0] == pytest.approx((reflectance(10000) + reflectance(14000)) / 2)
        # A 为云阴影，只取 B
        assert red[0, 1] == pytest.approx(reflectance(15000))
        # B 为云，只取 A
        assert red[1, 0] == pytest.approx(reflectance(12000))
        # 两景都被掩膜
        assert np.isnan(red[1, 1])

    def test_thermal_band_scaled(self, compositor, acquired, austin_aoi):
        composite = compositor.composite_daily(
            [make_scene("only", acquired)], "2020-07-01", austin_aoi
        )

        thermal = composite["ST_B10"].values
        np.testing.assert_allclose(thermal, 44000 * 0.00341802 + 149.0)

    def test_composite_keeps_crs(self, compositor, cloudy_pair, austin_aoi):
        composite = compositor.composite_daily(list(cloudy_pair), "2020-07-01", austin_aoi)

        assert composite.rio.crs.to_epsg() == 4326
        assert composite["SR_B4"].shape == (2, 2)
        assert "time" not in composite.dims

    def test_other_dates_ignored(self, compositor, cloudy_pair, acquired, austin_aoi):
        next_day = make_scene(
            "LC08_027039_20200702",
            acquired + timedelta(days=1),
            red=((30000, 30000), (30000, 30000)),
        )

        with_other = compositor.composite_daily(
            list(cloudy_pair) + [next_day], "2020-07-01", austin_aoi
        )
        without = compositor.composite_daily(list(cloudy_pair), "2020-07-01", austin_aoi)

        np.testing.assert_array_equal(with_other["SR_B4"].values, without["SR_B4"].values)

    def test_no_scenes_on_date(self, compositor, cloudy_pair, austin_aoi):
        with pytest.raises(EmptySceneSetError, match="2020-07-05"):
            compositor.composite_daily(list(cloudy_pair), "2020-07-05", austin_aoi)

    def test_empty_scene_list(self, compositor, austin_aoi):
        with pytest.raises(EmptySceneSetError):
            compositor.composite_daily([], "2020-07-01", austin_aoi)

    def test_grid_mismatch(self, compositor, acquired, austin_aoi):
        scenes = [
            make_scene("a", acquired),
            make_scene("b", acquired + timedelta(seconds=24), x=GRID_X + 0.01),
        ]

        with pytest.raises(GridMismatchError):
            compositor.composite_daily(scenes, "2020-07-01", austin_aoi)
