"""
STAC API 查询服务

查询 Landsat 8 Collection 2 Level-2 影像（Earth Search `landsat-c2-l2`），
列出获取日期，并将影像资产读取为分析网格上的 SceneRecord。
"""
from typing import Iterable, Iterator, List, Optional
from datetime import timedelta
import logging

import xarray as xr
from pystac_client import Client
from pystac import Item
from rasterio.warp import Resampling

from lst_pipeline.models.aoi import DateRange, GeoJSON
from lst_pipeline.models.scene import LandsatBand, REQUIRED_BANDS, SceneRecord
from lst_pipeline.services.errors import MissingBandError
from lst_pipeline.services.raster_processor import RasterProcessor
from lst_pipeline.services.temporal_compositor import parse_date, to_utc

logger = logging.getLogger(__name__)

# 只使用 Level-2 产品，比例因子仅适用于 L2 地表反射率和地表温度
LANDSAT_COLLECTION = "landsat-c2-l2"

LANDSAT8_PLATFORM = "landsat-8"


class STACQueryService:
    """STAC API 查询服务类"""

    def __init__(
        self,
        stac_url: str = "https://earth-search.aws.element84.com/v1",
        raster_processor: Optional[RasterProcessor] = None,
        max_items: Optional[int] = None
    ):
        """
        初始化 STAC 查询服务

        Args:
            stac_url: STAC API 端点 URL
            raster_processor: 用于读取资产的栅格处理器
            max_items: 单次查询返回的最大影像数，None 表示不限
        """
        self.stac_url = stac_url
        self.client = None
        self.raster_processor = raster_processor or RasterProcessor()
        self.max_items = max_items

    def _get_client(self) -> Client:
        """获取或创建 STAC 客户端"""
        if self.client is None:
            self.client = Client.open(self.stac_url)
        return self.client

    def _geojson_to_bbox(self, aoi: GeoJSON) -> List[float]:
        """
        将 GeoJSON 转换为 bbox

        Returns:
            bbox: [minx, miny, maxx, maxy]
        """
        coords = [c for polygon_ring in aoi.coordinates for c in polygon_ring]
        lons = [coord[0] for coord in coords]
        lats = [coord[1] for coord in coords]
        return [min(lons), min(lats), max(lons), max(lats)]

    def search_landsat8(
        self,
        aoi: GeoJSON,
        date_range: DateRange
    ) -> List[Item]:
        """
        查询与 AOI 相交且在时间范围内的 Landsat 8 影像

        空间和时间过滤均在服务端完成。

        Args:
            aoi: 感兴趣区域
            date_range: 时间范围

        Returns:
            STAC Item 列表，按获取时间升序
        """
        try:
            client = self._get_client()

            search_params = {
                "collections": [LANDSAT_COLLECTION],
                "bbox": self._geojson_to_bbox(aoi),
                "datetime": date_range.to_stac_interval(),
                "query": {"platform": {"in": [LANDSAT8_PLATFORM]}},
                "max_items": self.max_items,
            }

            logger.info(f"Searching Landsat 8 L2 with params: {search_params}")

            search = client.search(**search_params)
            items = sorted(search.items(), key=lambda item: item.datetime)

            logger.info(f"Found {len(items)} Landsat 8 items")
            return items

        except Exception as e:
            logger.error(f"Error searching Landsat 8 data: {str(e)}")
            raise

    def list_acquisition_dates(self, items: Iterable[Item]) -> List[str]:
        """
        列出影像的获取日期

        Args:
            items: STAC Item 列表

        Returns:
            去重并排序的日期字符串列表 (YYYY-MM-DD, UTC)
        """
        dates = {parse_date(item.datetime).strftime("%Y-%m-%d") for item in items}
        return sorted(dates)

    def items_for_date(self, items: Iterable[Item], date: str) -> List[Item]:
        """筛选获取时间落在 [date, date + 1 天) 内的影像"""
        day_start = parse_date(date)
        day_end = day_start + timedelta(days=1)
        return [
            item for item in items
            if day_start <= to_utc(item.datetime) < day_end
        ]

    def load_scene(self, item: Item, grid: xr.DataArray) -> SceneRecord:
        """
        读取单景影像的必需波段并重采样到分析网格

        Args:
            item: STAC Item
            grid: 分析网格模板

        Returns:
            SceneRecord

        Raises:
            MissingBandError: 如果 Item 缺少必需的资产
            ValueError: 如果读取失败
        """
        bands = {}
        for band in REQUIRED_BANDS:
            asset = item.assets.get(band.asset_key)
            if asset is None:
                raise MissingBandError(
                    f"Item {item.id} has no '{band.asset_key}' asset for band {band.value}"
                )

            resampling = Resampling.nearest if band == LandsatBand.QA_PIXEL else Resampling.bilinear
            logger.info(f"Reading {band.value} of {item.id} from {asset.href}")
            data = self.raster_processor.read_cog_from_url(asset.href)
            bands[band.value] = self.raster_processor.align_to_grid(data, grid, resampling)

        image = xr.Dataset(bands)
        image = image.rio.write_crs(grid.rio.crs)
        return SceneRecord(scene_id=item.id, acquired=item.datetime, image=image)

    def iter_scenes(self, items: Iterable[Item], grid: xr.DataArray) -> Iterator[SceneRecord]:
        """按需逐景读取影像"""
        for item in items:
            yield self.load_scene(item, grid)
