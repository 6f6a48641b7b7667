"""
植被指数与地表比辐射率计算器

- NDVI (归一化植被指数)
- FV (植被覆盖度，由 AOI 内 NDVI 最小/最大值归一化后平方得到)
- EM (地表比辐射率，FV 的经验线性映射)
"""

import logging
import math
from typing import Optional, Union

import numpy as np
import xarray as xr

from lst_pipeline.models.aoi import GeoJSON
from lst_pipeline.models.scene import LandsatBand
from lst_pipeline.services.errors import DegenerateStatisticsError
from lst_pipeline.services.raster_processor import RasterProcessor

logger = logging.getLogger(__name__)

ArrayLike = Union[np.ndarray, xr.DataArray]

# 比辐射率经验系数: EM = FV * 0.004 + 0.986
EMISSIVITY_SLOPE = 0.004
EMISSIVITY_INTERCEPT = 0.986


def _where(cond, x, y):
    if isinstance(cond, xr.DataArray):
        return xr.where(cond, x, y, keep_attrs=True)
    return np.where(cond, x, y)


class VegetationIndexCalculator:
    """
    植被指数计算器类

    所有逐像素方法同时接受 numpy 数组和 xarray DataArray，NaN（无数据）会被保留。
    """

    def __init__(
        self,
        raster_processor: Optional[RasterProcessor] = None,
        scale: float = 30.0,
        max_pixels: float = 1e9
    ):
        self.raster_processor = raster_processor or RasterProcessor()
        self.scale = scale
        self.max_pixels = max_pixels

    def calculate_ndvi(self, nir: ArrayLike, red: ArrayLike) -> ArrayLike:
        """
        计算归一化植被指数 (NDVI)

        公式: NDVI = (NIR - Red) / (NIR + Red)

        分母为 0 时返回 0；任一输入为 NaN 时结果为 NaN。

        参数:
            nir: 近红外波段 (SR_B5)
            red: 红光波段 (SR_B4)

        返回:
            NDVI 计算结果
        """
        denominator = nir + red
        with np.errstate(divide='ignore', invalid='ignore'):
            ndvi = _where(denominator != 0, (nir - red) / denominator, 0)
        if isinstance(ndvi, xr.DataArray):
            ndvi = ndvi.rename('NDVI')
        return ndvi

    def calculate_fraction_of_vegetation(
        self,
        ndvi: ArrayLike,
        ndvi_min: float,
        ndvi_max: float
    ) -> ArrayLike:
        """
        计算植被覆盖度 (FV)

        公式: FV = ((NDVI - NDVI_min) / (NDVI_max - NDVI_min))^2

        NDVI 位于 [NDVI_min, NDVI_max] 内时结果位于 [0, 1]。

        Raises:
            DegenerateStatisticsError: 如果最小/最大值非有限值或相等（除零）
        """
        if not (math.isfinite(ndvi_min) and math.isfinite(ndvi_max)):
            raise DegenerateStatisticsError(
                f"NDVI statistics are not finite: min={ndvi_min}, max={ndvi_max}"
            )
        if ndvi_max == ndvi_min:
            raise DegenerateStatisticsError(
                f"NDVI max equals min ({ndvi_max}); fraction of vegetation is undefined"
            )

        fv = ((ndvi - ndvi_min) / (ndvi_max - ndvi_min)) ** 2
        if isinstance(fv, xr.DataArray):
            fv = fv.rename('FV')
        return fv

    def calculate_emissivity(self, fv: ArrayLike) -> ArrayLike:
        """
        计算地表比辐射率 (EM)

        公式: EM = FV * 0.004 + 0.986，FV ∈ [0, 1] 时 EM ∈ [0.986, 0.990]
        """
        em = fv * EMISSIVITY_SLOPE + EMISSIVITY_INTERCEPT
        if isinstance(em, xr.DataArray):
            em = em.rename('EM')
        return em

    def estimate_emissivity(self, composite: xr.Dataset, aoi: GeoJSON) -> xr.Dataset:
        """
        由日合成影像估算比辐射率

        NDVI 最小/最大值按日期分别在 AOI 内统计。

        Args:
            composite: 已定标、掩膜并裁剪的日合成影像
            aoi: 统计区域

        Returns:
            xr.Dataset: 包含 NDVI、FV、EM 三个波段，
            attrs 中记录 ndvi_min 和 ndvi_max

        Raises:
            DegenerateStatisticsError: 如果没有有效像素或 NDVI 最大值等于最小值
        """
        ndvi = self.calculate_ndvi(
            composite[LandsatBand.SR_B5.value],
            composite[LandsatBand.SR_B4.value]
        )

        ndvi_min = self.raster_processor.reduce_region(
            ndvi, aoi, 'min', scale=self.scale, max_pixels=self.max_pixels
        )
        ndvi_max = self.raster_processor.reduce_region(
            ndvi, aoi, 'max', scale=self.scale, max_pixels=self.max_pixels
        )
        logger.info(f"NDVI range within AOI: min={ndvi_min:.4f}, max={ndvi_max:.4f}")

        fv = self.calculate_fraction_of_vegetation(ndvi, ndvi_min, ndvi_max)
        em = self.calculate_emissivity(fv)

        result = xr.Dataset({'NDVI': ndvi, 'FV': fv, 'EM': em})
        result.attrs['ndvi_min'] = ndvi_min
        result.attrs['ndvi_max'] = ndvi_max
        if composite.rio.crs is not None:
            result = result.rio.write_crs(composite.rio.crs)
        return result
