"""
测试公共夹具

构造位于 Austin AOI 内的 2x2 Landsat 8 L2 测试网格 (EPSG:4326)。
"""
from datetime import datetime, timezone

import numpy as np
import pytest
import xarray as xr
import rioxarray  # noqa: F401

from lst_pipeline.models.scene import SceneRecord
from lst_pipeline.services.aoi_service import AOIService

GRID_X = np.array([-97.745, -97.740])
GRID_Y = np.array([30.270, 30.265])


def make_image(bands, x=GRID_X, y=GRID_Y) -> xr.Dataset:
    """由 {波段名: 2x2 数组} 构造带 CRS 的影像"""
    ds = xr.Dataset(
        {name: (("y", "x"), np.asarray(values)) for name, values in bands.items()},
        coords={"y": y, "x": x},
    )
    return ds.rio.write_crs("EPSG:4326")


def make_scene(
    scene_id,
    acquired,
    red=((10000, 11000), (12000, 13000)),
    nir=((20000, 20000), (20000, 20000)),
    thermal=((44000, 44000), (44000, 44000)),
    qa=((0, 0), (0, 0)),
    x=GRID_X,
    y=GRID_Y,
) -> SceneRecord:
    """构造原始 DN 值的测试影像"""
    image = make_image(
        {
            "SR_B4": np.array(red, dtype=np.uint16),
            "SR_B5": np.array(nir, dtype=np.uint16),
            "ST_B10": np.array(thermal, dtype=np.uint16),
            "QA_PIXEL": np.array(qa, dtype=np.uint16),
        },
        x=x,
        y=y,
    )
    return SceneRecord(scene_id=scene_id, acquired=acquired, image=image)


@pytest.fixture
def aoi_service():
    """创建 AOIService 实例"""
    return AOIService()


@pytest.fixture
def austin_aoi(aoi_service):
    """Austin 周边 10 km 矩形 AOI"""
    return aoi_service.build_from_point(-97.7431, 30.2672, 10000)


@pytest.fixture
def acquired():
    """测试影像获取时间"""
    return datetime(2020, 7, 1, 16, 55, 12, tzinfo=timezone.utc)
