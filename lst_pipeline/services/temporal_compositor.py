"""
时间合成处理器

按日期合成多景卫星影像：对当天的每景影像先做辐射定标和云掩膜，
再在时间维度上计算逐像素中值，最后裁剪到 AOI。
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Union

import xarray as xr

from lst_pipeline.models.aoi import GeoJSON
from lst_pipeline.models.scene import SceneRecord
from lst_pipeline.services.errors import EmptySceneSetError
from lst_pipeline.services.raster_processor import RasterProcessor

logger = logging.getLogger(__name__)


def to_utc(value: datetime) -> datetime:
    """无时区的时间视为 UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_date(date: Union[str, datetime]) -> datetime:
    """将 YYYY-MM-DD 字符串或 datetime 转换为当天 00:00 (UTC)"""
    if isinstance(date, str):
        date = datetime.strptime(date, "%Y-%m-%d")
    return to_utc(date).replace(hour=0, minute=0, second=0, microsecond=0)


class TemporalCompositor:
    """
    时间合成处理器

    将同一天的多景影像合成为一张日合成影像。
    """

    def __init__(self, raster_processor: Optional[RasterProcessor] = None):
        self.raster_processor = raster_processor or RasterProcessor()

    def select_scenes_for_date(
        self,
        scenes: Sequence[SceneRecord],
        date: Union[str, datetime],
    ) -> List[SceneRecord]:
        """
        选取获取时间落在 [date, date + 1 天) 内的影像

        Args:
            scenes: 已按 AOI 和时间范围过滤的影像
            date: 日期 (YYYY-MM-DD 或 datetime)

        Returns:
            当天的影像列表，按获取时间排序
        """
        day_start = parse_date(date)
        day_end = day_start + timedelta(days=1)
        selected = [s for s in scenes if day_start <= s.acquired < day_end]
        return sorted(selected, key=lambda s: s.acquired)

    def composite_daily(
        self,
        scenes: Sequence[SceneRecord],
        date: Union[str, datetime],
        aoi: GeoJSON,
    ) -> xr.Dataset:
        """
        生成指定日期的日合成影像。

        Args:
            scenes: 候选影像（可包含其他日期的影像）
            date: 合成日期
            aoi: 裁剪区域

        Returns:
            xr.Dataset: 逐波段中值合成并裁剪到 AOI 的影像

        Raises:
            EmptySceneSetError: 如果当天没有影像
            GridMismatchError: 如果当天的影像网格不一致
        """
        daily = self.select_scenes_for_date(scenes, date)
        label = parse_date(date).strftime("%Y-%m-%d")
        if not daily:
            raise EmptySceneSetError(f"No scenes acquired on {label}")

        logger.info(f"Compositing {label}: {len(daily)} scenes ({[s.scene_id for s in daily]})")

        masked = []
        for scene in daily:
            scaled = self.raster_processor.apply_scale_factors(scene.image)
            mask = self.raster_processor.build_cloud_mask(scene.qa)
            masked.append(self.raster_processor.apply_cloud_mask(scaled, mask))

        composite = self._aggregate_median(masked)
        return self.raster_processor.clip_to_aoi(composite, aoi)

    def _aggregate_median(self, images: List[xr.Dataset]) -> xr.Dataset:
        """
        计算影像列表在时间维度上的逐像素中值。

        使用 nanmedian 忽略 NaN（被云掩膜标记的像素），
        某个像素在所有影像中都是 NaN 时结果也为 NaN。

        Args:
            images: 影像列表，网格应一致

        Returns:
            xr.Dataset: 中值合成结果，保留第一张影像的空间元数据

        Raises:
            ValueError: 如果 images 为空
            GridMismatchError: 如果网格不一致
        """
        if not images:
            raise ValueError("Cannot aggregate empty image list")

        ref = images[0]
        if len(images) == 1:
            return ref.copy()

        for other in images[1:]:
            self.raster_processor.ensure_same_grid(ref, other)

        # 统一坐标后沿新的 "time" 维度堆叠
        aligned = [img.assign_coords(x=ref.x, y=ref.y) for img in images]
        stacked = xr.concat(aligned, dim="time", join="exact")

        composite = stacked.median(dim="time", skipna=True)

        # 保留第一张影像的空间元数据 (CRS, transform)
        if ref.rio.crs is not None:
            composite = composite.rio.write_crs(ref.rio.crs)
            composite = composite.rio.write_transform(ref.rio.transform())

        return composite
