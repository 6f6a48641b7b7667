"""
Landsat 8 Collection 2 Level-2 影像数据模型
"""
from datetime import datetime, timezone
from enum import Enum
from typing import List

import xarray as xr
from pydantic import BaseModel, ConfigDict, field_validator


class LandsatBand(str, Enum):
    """Landsat 8 C2 L2 波段（名称与 USGS 产品保持一致）"""
    SR_B1 = "SR_B1"
    SR_B2 = "SR_B2"
    SR_B3 = "SR_B3"
    SR_B4 = "SR_B4"
    SR_B5 = "SR_B5"
    SR_B6 = "SR_B6"
    SR_B7 = "SR_B7"
    ST_B10 = "ST_B10"
    QA_PIXEL = "QA_PIXEL"

    @property
    def asset_key(self) -> str:
        """Earth Search (landsat-c2-l2) 中对应的资产名称"""
        return _ASSET_KEYS[self]

    @property
    def is_optical(self) -> bool:
        return self.value.startswith("SR_B")

    @property
    def is_thermal(self) -> bool:
        return self.value.startswith("ST_B")


_ASSET_KEYS = {
    LandsatBand.SR_B1: "coastal",
    LandsatBand.SR_B2: "blue",
    LandsatBand.SR_B3: "green",
    LandsatBand.SR_B4: "red",
    LandsatBand.SR_B5: "nir08",
    LandsatBand.SR_B6: "swir16",
    LandsatBand.SR_B7: "swir22",
    LandsatBand.ST_B10: "lwir11",
    LandsatBand.QA_PIXEL: "qa_pixel",
}

# LST 计算必需的波段：红光、近红外、热红外和质量波段
REQUIRED_BANDS: List[LandsatBand] = [
    LandsatBand.SR_B4,
    LandsatBand.SR_B5,
    LandsatBand.ST_B10,
    LandsatBand.QA_PIXEL,
]


class SceneRecord(BaseModel):
    """
    单景卫星影像

    image 为 xr.Dataset，每个波段一个数据变量，共享同一 (y, x) 空间网格。
    构造时一次性校验波段模式，后续流程不再按名称检查。
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    scene_id: str
    acquired: datetime
    image: xr.Dataset

    @field_validator('acquired')
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """无时区的时间视为 UTC"""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @field_validator('image')
    @classmethod
    def validate_bands(cls, v: xr.Dataset) -> xr.Dataset:
        missing = [band.value for band in REQUIRED_BANDS if band.value not in v.data_vars]
        if missing:
            raise ValueError(f"Scene is missing required bands: {missing}")

        for name, band in v.data_vars.items():
            if tuple(band.dims) != ("y", "x"):
                raise ValueError(
                    f"Band {name} must be a 2-D (y, x) grid, got dims {band.dims}"
                )
        return v

    @property
    def qa(self) -> xr.DataArray:
        """质量评估波段 (QA_PIXEL)"""
        return self.image[LandsatBand.QA_PIXEL.value]

    @property
    def acquisition_date(self) -> str:
        """获取日期，格式 YYYY-MM-DD (UTC)"""
        return self.acquired.strftime("%Y-%m-%d")
