"""
AOI 处理服务
"""
import logging
import math
from typing import List

import numpy as np
import pyproj
import xarray as xr
import rioxarray  # noqa: F401  注册 .rio 访问器
from rasterio.transform import from_origin
from shapely.geometry import Point, box, shape, mapping
from shapely.ops import transform

from lst_pipeline.models.aoi import GeoJSON

logger = logging.getLogger(__name__)


class AOIService:
    """AOI 处理服务类"""

    def __init__(self):
        """初始化 AOI 服务"""
        # 创建坐标转换器用于面积计算（WGS84 到等面积投影）
        self.wgs84 = pyproj.CRS('EPSG:4326')
        # 使用 World Mollweide 等面积投影
        self.equal_area = pyproj.CRS('ESRI:54009')
        self.transformer = pyproj.Transformer.from_crs(
            self.wgs84,
            self.equal_area,
            always_xy=True
        )

    @staticmethod
    def utm_crs_for(lon: float, lat: float) -> pyproj.CRS:
        """
        返回经纬度所在的 WGS84 UTM 分带坐标系

        Args:
            lon: 经度
            lat: 纬度

        Returns:
            pyproj.CRS: UTM 坐标系（北半球 EPSG:326xx，南半球 EPSG:327xx）
        """
        zone = int((lon + 180) // 6) + 1
        zone = min(max(zone, 1), 60)
        epsg = (32600 if lat >= 0 else 32700) + zone
        return pyproj.CRS.from_epsg(epsg)

    def build_from_point(self, lon: float, lat: float, buffer_m: float) -> GeoJSON:
        """
        由中心点和缓冲半径构建矩形 AOI

        在中心点所在的 UTM 分带中按米缓冲，取缓冲区的外接矩形，
        再转换回 WGS84 并取其经纬度外接矩形。

        Args:
            lon: 中心点经度
            lat: 中心点纬度
            buffer_m: 缓冲半径（米）

        Returns:
            GeoJSON: 轴对齐的矩形多边形 (EPSG:4326)

        Raises:
            ValueError: 如果坐标或缓冲半径无效
        """
        if not (-180 <= lon <= 180) or not (-90 <= lat <= 90):
            raise ValueError(f"Invalid center coordinate: ({lon}, {lat})")
        if not math.isfinite(buffer_m) or buffer_m <= 0:
            raise ValueError(f"Buffer size must be a positive number of meters, got {buffer_m}")

        utm = self.utm_crs_for(lon, lat)
        to_utm = pyproj.Transformer.from_crs(self.wgs84, utm, always_xy=True)
        to_wgs84 = pyproj.Transformer.from_crs(utm, self.wgs84, always_xy=True)

        x, y = to_utm.transform(lon, lat)
        buffered = Point(x, y).buffer(buffer_m)
        rect_wgs84 = transform(to_wgs84.transform, box(*buffered.bounds))

        aoi = GeoJSON(**mapping(box(*rect_wgs84.bounds)))
        logger.info(
            f"Built AOI around ({lon}, {lat}) with {buffer_m} m buffer: "
            f"bounds={self.calculate_bounds(aoi)}"
        )
        return aoi

    def validate_geometry(self, aoi: GeoJSON) -> bool:
        """
        验证 GeoJSON 几何有效性

        Args:
            aoi: GeoJSON 对象

        Returns:
            bool: 几何是否有效

        Raises:
            ValueError: 如果几何无效
        """
        geom = shape(aoi.model_dump())

        if geom.is_empty:
            raise ValueError("Geometry is empty")

        if not geom.is_valid:
            from shapely.validation import explain_validity
            raise ValueError(f"Invalid geometry: {explain_validity(geom)}")

        if geom.area <= 0:
            raise ValueError("Geometry area must be positive")

        return True

    def calculate_area_km2(self, aoi: GeoJSON) -> float:
        """
        计算 AOI 面积（平方公里）

        Args:
            aoi: GeoJSON 对象

        Returns:
            float: 面积（平方公里）
        """
        geom = shape(aoi.model_dump())
        geom_projected = transform(self.transformer.transform, geom)
        return round(geom_projected.area / 1_000_000, 2)

    def calculate_centroid(self, aoi: GeoJSON) -> List[float]:
        """
        计算 AOI 质心

        Returns:
            List[float]: 质心坐标 [lon, lat]
        """
        centroid = shape(aoi.model_dump()).centroid
        return [round(centroid.x, 6), round(centroid.y, 6)]

    def calculate_bounds(self, aoi: GeoJSON) -> List[float]:
        """
        计算 AOI 边界框

        Returns:
            List[float]: 边界框 [minx, miny, maxx, maxy]
        """
        bounds = shape(aoi.model_dump()).bounds
        return [round(b, 6) for b in bounds]

    def build_grid(self, aoi: GeoJSON, scale: float = 30.0) -> xr.DataArray:
        """
        构建覆盖 AOI 的分析网格

        网格位于 AOI 质心所在的 UTM 分带，像元大小为 scale 米，
        边界对齐到 scale 的整数倍。同一日期的所有影像都重采样到该网格，
        保证逐像素运算时空间网格一致。

        Args:
            aoi: GeoJSON 对象
            scale: 像元大小（米）

        Returns:
            xr.DataArray: 全零模板栅格，带 CRS 和仿射变换
        """
        if scale <= 0:
            raise ValueError(f"scale must be positive, got {scale}")

        lon, lat = self.calculate_centroid(aoi)
        utm = self.utm_crs_for(lon, lat)
        to_utm = pyproj.Transformer.from_crs(self.wgs84, utm, always_xy=True)
        minx, miny, maxx, maxy = transform(to_utm.transform, shape(aoi.model_dump())).bounds

        minx = math.floor(minx / scale) * scale
        miny = math.floor(miny / scale) * scale
        maxx = math.ceil(maxx / scale) * scale
        maxy = math.ceil(maxy / scale) * scale
        width = int(round((maxx - minx) / scale))
        height = int(round((maxy - miny) / scale))

        # 像元中心坐标
        xs = minx + scale * (np.arange(width) + 0.5)
        ys = maxy - scale * (np.arange(height) + 0.5)

        grid = xr.DataArray(
            np.zeros((height, width), dtype=np.float32),
            dims=('y', 'x'),
            coords={'y': ys, 'x': xs},
        )
        grid.rio.write_crs(utm, inplace=True)
        grid.rio.write_transform(from_origin(minx, maxy, scale, scale), inplace=True)

        logger.info(f"Analysis grid: {width}x{height} pixels at {scale} m in {utm.to_string()}")
        return grid
