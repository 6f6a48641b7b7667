"""
地表温度 (LST) 反演

单通道普朗克定律反演:
    LST = TB / (1 + (0.00115 * TB / 1.438) * ln(EM)) - 273.15

TB 为热红外波段 (ST_B10) 定标后的亮温 (K)，EM 为地表比辐射率，结果单位为摄氏度。
"""
import logging
from typing import Optional, Union

import numpy as np
import xarray as xr

from lst_pipeline.services.errors import DegenerateStatisticsError, GridMismatchError
from lst_pipeline.services.raster_processor import RasterProcessor

logger = logging.getLogger(__name__)

ArrayLike = Union[np.ndarray, xr.DataArray]

# 发射辐射波长系数和 ρ = h·c/σ 系数
WAVELENGTH = 0.00115
RHO = 1.438
KELVIN_OFFSET = 273.15


class LSTCalculator:
    """地表温度计算器类"""

    def __init__(self, raster_processor: Optional[RasterProcessor] = None):
        self.raster_processor = raster_processor or RasterProcessor()

    def calculate_lst(
        self,
        tb: ArrayLike,
        em: ArrayLike,
        name: Optional[str] = None,
        date: Optional[str] = None
    ) -> ArrayLike:
        """
        逐像素计算地表温度（摄氏度）

        Args:
            tb: 亮温 (K)
            em: 比辐射率，必须为正
            name: 输出波段名（仅 DataArray）
            date: 结果对应的日期，写入 attrs（仅 DataArray）

        Returns:
            LST，单位 °C；输入为 NaN 的像素结果仍为 NaN

        Raises:
            GridMismatchError: 如果 tb 与 em 网格不一致
            DegenerateStatisticsError: 如果存在非正的比辐射率
        """
        if isinstance(tb, xr.DataArray) and isinstance(em, xr.DataArray):
            self.raster_processor.ensure_same_grid(tb, em)
            em = em.assign_coords(x=tb.x, y=tb.y)
        elif np.shape(tb) != np.shape(em) and np.ndim(em) != 0:
            raise GridMismatchError(f"TB shape {np.shape(tb)} does not match EM shape {np.shape(em)}")

        em_values = np.asarray(em, dtype=np.float64)
        if np.any(em_values[np.isfinite(em_values)] <= 0):
            raise DegenerateStatisticsError("Emissivity must be strictly positive")

        with np.errstate(invalid='ignore'):
            lst = (tb / (1 + (WAVELENGTH * (tb / RHO)) * np.log(em))) - KELVIN_OFFSET

        if isinstance(lst, xr.DataArray):
            if name:
                lst = lst.rename(name)
            if date:
                lst.attrs['date'] = date
            lst.attrs['units'] = 'degC'
        return lst
