"""
栅格数据处理服务

包括辐射定标（比例因子）、云掩膜、AOI 裁剪、网格对齐、区域统计和 COG 输出。
"""
import os
import logging
from typing import Optional, Dict, Any, List, Union
import numpy as np
import rasterio
from rasterio.warp import Resampling
from rasterio.crs import CRS
import rioxarray
from rioxarray.exceptions import NoDataInBounds
import xarray as xr
from shapely.geometry import shape, mapping
from lst_pipeline.models.aoi import GeoJSON
from lst_pipeline.models.scene import LandsatBand
from lst_pipeline.services.errors import (
    DegenerateStatisticsError,
    GridMismatchError,
    PixelBudgetExceededError,
)

logger = logging.getLogger(__name__)

RasterData = Union[xr.DataArray, xr.Dataset]

# Landsat Collection 2 Level-2 比例因子
OPTICAL_SCALE = 0.0000275
OPTICAL_OFFSET = -0.2
THERMAL_SCALE = 0.00341802
THERMAL_OFFSET = 149.0

# QA_PIXEL 位掩码: bit 3 云阴影, bit 5 云
CLOUD_SHADOW_BITMASK = 1 << 3
CLOUD_BITMASK = 1 << 5

REDUCERS = {
    "min": np.min,
    "max": np.max,
    "median": np.median,
}


class RasterProcessor:
    """栅格数据处理器类"""

    def __init__(self):
        """初始化栅格处理器"""
        # 配置 GDAL 环境变量以支持云优化访问
        os.environ['GDAL_DISABLE_READDIR_ON_OPEN'] = 'EMPTY_DIR'
        os.environ['CPL_VSIL_CURL_ALLOWED_EXTENSIONS'] = '.tif,.tiff,.jp2'

        # 网络超时和重试配置
        os.environ['GDAL_HTTP_TIMEOUT'] = '600'
        os.environ['GDAL_HTTP_MAX_RETRY'] = '5'
        os.environ['GDAL_HTTP_RETRY_DELAY'] = '10'
        os.environ['GDAL_HTTP_CONNECTTIMEOUT'] = '60'

        # Landsat 公开数据桶为请求者付费
        os.environ.setdefault('AWS_REQUEST_PAYER', 'requester')

        os.environ['GDAL_CACHEMAX'] = '512'

    def read_cog_from_url(self, url: str) -> xr.DataArray:
        """
        从 S3 URL 或 HTTP URL 读取云优化 GeoTIFF (COG) 单波段数据

        Args:
            url: S3 URL、HTTP URL 或本地路径

        Returns:
            xr.DataArray: (y, x) 栅格数据，保留源文件 nodata

        Raises:
            ValueError: 如果 URL 无效或读取失败
        """
        original_url = url
        try:
            if url.startswith('s3://'):
                url = url.replace('s3://', '/vsis3/')
            elif url.startswith('http://') or url.startswith('https://'):
                url = f'/vsicurl/{url}'

            data = rioxarray.open_rasterio(url)

            # 只取第一个波段
            if 'band' in data.dims:
                data = data.isel(band=0, drop=True)

            return data

        except Exception as e:
            error_msg = str(e)
            if "404" in error_msg:
                raise ValueError(
                    f"Failed to read COG from URL {original_url}: "
                    f"File not found (HTTP 404). Please verify the URL is correct and the file exists."
                )
            elif "403" in error_msg:
                raise ValueError(
                    f"Failed to read COG from URL {original_url}: "
                    f"Access denied (HTTP 403). Please check authentication or requester-pays settings."
                )
            elif "timeout" in error_msg.lower():
                raise ValueError(
                    f"Failed to read COG from URL {original_url}: "
                    f"Connection timeout. The server may be slow or unreachable."
                )
            else:
                raise ValueError(f"Failed to read COG from URL {original_url}: {error_msg}")

    def align_to_grid(
        self,
        data: xr.DataArray,
        grid: xr.DataArray,
        resampling: Resampling = Resampling.bilinear
    ) -> xr.DataArray:
        """
        将单波段数据重采样到分析网格

        源数据先按网格范围裁剪再读取，避免整景载入内存。
        源数据的 nodata 转为 NaN，网格外的像素同样为 NaN。

        Args:
            data: 输入栅格数据（需带 CRS）
            grid: 目标网格模板
            resampling: 重采样方法（QA 波段应使用 nearest）

        Returns:
            xr.DataArray: 与 grid 网格一致的 float32 数据
        """
        if data.rio.crs is None:
            raise ValueError("Input data must have a CRS")

        # 先裁剪到网格范围（外扩一个像素），只读取所需窗口
        res_x, res_y = data.rio.resolution()
        minx, miny, maxx, maxy = grid.rio.transform_bounds(data.rio.crs)
        try:
            data = data.rio.clip_box(
                minx - abs(res_x),
                miny - abs(res_y),
                maxx + abs(res_x),
                maxy + abs(res_y),
                auto_expand=True
            )
        except NoDataInBounds:
            logger.warning(f"Raster {data.name or ''} does not overlap the analysis grid")
            return xr.full_like(grid, np.nan, dtype=np.float32)

        nodata = data.rio.nodata
        float_data = data.astype(np.float32)
        if nodata is not None and not np.isnan(nodata):
            float_data = float_data.where(data != nodata)
        float_data.rio.write_crs(data.rio.crs, inplace=True)
        float_data.rio.write_nodata(np.nan, encoded=False, inplace=True)

        aligned = float_data.rio.reproject_match(grid, resampling=resampling)
        # reproject_match 的坐标可能存在浮点误差，统一使用网格坐标
        return aligned.assign_coords(x=grid.x, y=grid.y)

    def ensure_same_grid(self, reference: RasterData, other: RasterData) -> None:
        """
        检查两个栅格是否位于同一空间网格

        Raises:
            GridMismatchError: 如果形状、坐标或 CRS 不一致
        """
        for dim in ('y', 'x'):
            if dim not in reference.dims or dim not in other.dims:
                raise GridMismatchError(f"Raster is missing spatial dimension '{dim}'")
            ref_coord = reference[dim].values
            other_coord = other[dim].values
            if ref_coord.shape != other_coord.shape or not np.allclose(ref_coord, other_coord):
                raise GridMismatchError(
                    f"Raster grids differ along '{dim}': "
                    f"{ref_coord.shape[0]} vs {other_coord.shape[0]} pixels"
                )

        ref_crs = reference.rio.crs
        other_crs = other.rio.crs
        if ref_crs is not None and other_crs is not None and ref_crs != other_crs:
            raise GridMismatchError(f"Raster CRS differ: {ref_crs} vs {other_crs}")

    def apply_scale_factors(self, image: xr.Dataset) -> xr.Dataset:
        """
        将原始 DN 值转换为物理量

        光学波段 (SR_B1-SR_B7): 反射率 = DN * 0.0000275 - 0.2
        热红外波段 (ST_B10): 亮温 (K) = DN * 0.00341802 + 149.0
        QA_PIXEL 以及不属于 LandsatBand 的波段保持不变。

        Args:
            image: 原始影像

        Returns:
            xr.Dataset: 按波段名覆盖后的新影像
        """
        updates = {}
        for name, band in image.data_vars.items():
            try:
                landsat_band = LandsatBand(name)
            except ValueError:
                continue
            if landsat_band.is_optical:
                updates[name] = band.astype(np.float64) * OPTICAL_SCALE + OPTICAL_OFFSET
            elif landsat_band.is_thermal:
                updates[name] = band.astype(np.float64) * THERMAL_SCALE + THERMAL_OFFSET
        return image.assign(updates)

    def build_cloud_mask(self, qa_band: xr.DataArray) -> xr.DataArray:
        """
        由 QA_PIXEL 位掩码生成有效像素掩膜

        当 bit 3（云阴影）和 bit 5（云）都为 0 时像素有效。
        QA 值为 NaN（无数据）的像素无效。

        Args:
            qa_band: QA_PIXEL 波段

        Returns:
            xr.DataArray: 布尔掩膜，True 表示有效
        """
        qa_values = np.asarray(qa_band.values)
        if np.issubdtype(qa_values.dtype, np.floating):
            finite = np.isfinite(qa_values)
            qa_int = np.where(finite, qa_values, 0).astype(np.uint32)
        else:
            finite = np.ones(qa_values.shape, dtype=bool)
            qa_int = qa_values.astype(np.uint32)

        valid = (
            finite
            & ((qa_int & CLOUD_SHADOW_BITMASK) == 0)
            & ((qa_int & CLOUD_BITMASK) == 0)
        )
        return xr.DataArray(valid, coords=qa_band.coords, dims=qa_band.dims, name="valid")

    def apply_cloud_mask(
        self,
        image: xr.Dataset,
        mask: Optional[xr.DataArray] = None
    ) -> xr.Dataset:
        """
        应用云和云阴影掩膜

        被掩膜的像素在所有波段中都设为 NaN，以便在合成时被排除。

        Args:
            image: 输入影像
            mask: 有效像素掩膜，None 表示由影像的 QA_PIXEL 波段生成

        Returns:
            xr.Dataset: 应用掩膜后的新影像

        Raises:
            GridMismatchError: 如果掩膜与影像网格不一致
        """
        if mask is None:
            mask = self.build_cloud_mask(image[LandsatBand.QA_PIXEL.value])
        self.ensure_same_grid(image, mask)

        # 使用影像坐标，避免浮点误差导致对齐失败
        mask = mask.assign_coords(x=image.x, y=image.y)
        return image.astype(np.float64).where(mask)

    def clip_to_aoi(
        self,
        data: RasterData,
        aoi: GeoJSON,
        all_touched: bool = True
    ) -> RasterData:
        """
        将栅格数据裁剪到感兴趣区域 (AOI)

        AOI 外的像素被移除或设为 NaN。

        Args:
            data: 输入栅格数据
            aoi: GeoJSON 格式的 AOI (EPSG:4326)
            all_touched: 是否包含所有接触 AOI 的像素

        Returns:
            裁剪后的栅格数据

        Raises:
            GridMismatchError: 如果 AOI 与栅格不重叠
            ValueError: 如果裁剪失败
        """
        try:
            from shapely.geometry import box as shapely_box

            geom = shape(aoi.model_dump())

            if data.rio.crs is None:
                raise ValueError("Input data must have a CRS")

            aoi_crs = CRS.from_epsg(4326)

            # AOI 与数据 CRS 不同时重投影 AOI
            if data.rio.crs != aoi_crs:
                from pyproj import Transformer
                from shapely.ops import transform as shapely_transform
                transformer = Transformer.from_crs(
                    aoi_crs,
                    data.rio.crs,
                    always_xy=True
                )
                geom = shapely_transform(transformer.transform, geom)

            # 检查 AOI 与栅格数据的空间重叠
            raster_box = shapely_box(*data.rio.bounds())
            intersection = geom.intersection(raster_box)
            if intersection.is_empty:
                raise GridMismatchError(
                    f"AOI does not overlap with raster data. "
                    f"Raster bounds: {data.rio.bounds()}, AOI bounds: {geom.bounds}"
                )

            return data.rio.clip(
                [mapping(intersection)],
                data.rio.crs,
                drop=True,
                all_touched=all_touched
            )

        except GridMismatchError:
            raise
        except Exception as e:
            raise ValueError(f"Failed to clip raster to AOI: {str(e)}")

    def reduce_region(
        self,
        data: xr.DataArray,
        aoi: GeoJSON,
        reducer: str,
        scale: float = 30.0,
        max_pixels: float = 1e9
    ) -> float:
        """
        计算 AOI 内的区域统计值

        只使用有效（有限值）像素。投影坐标系下分辨率与 scale 不一致时，
        先重采样到 scale 米。

        Args:
            data: 单波段栅格数据
            aoi: 统计区域
            reducer: 统计方法 ("min", "max", "median")
            scale: 采样尺度（米）
            max_pixels: 像素数上限

        Returns:
            float: 统计值

        Raises:
            ValueError: 如果 reducer 不支持
            PixelBudgetExceededError: 如果像素数超过上限
            DegenerateStatisticsError: 如果没有有效像素
        """
        if reducer not in REDUCERS:
            raise ValueError(f"Unsupported reducer: {reducer}. Expected one of {sorted(REDUCERS)}")

        region = self.clip_to_aoi(data, aoi)

        crs = region.rio.crs
        if crs is not None and crs.is_projected:
            res_x, res_y = region.rio.resolution()
            if not (np.isclose(abs(res_x), scale) and np.isclose(abs(res_y), scale)):
                region = region.astype(np.float64)
                region.rio.write_nodata(np.nan, encoded=False, inplace=True)
                region = region.rio.reproject(
                    crs,
                    resolution=scale,
                    resampling=Resampling.nearest
                )

        values = np.asarray(region.values, dtype=np.float64)
        if values.size > max_pixels:
            raise PixelBudgetExceededError(
                f"Region has {values.size} pixels at scale {scale}, exceeding max_pixels={max_pixels:.0f}"
            )

        valid = values[np.isfinite(values)]
        if valid.size == 0:
            raise DegenerateStatisticsError(
                f"No valid pixels within AOI for '{reducer}' reduction of {data.name or 'raster'}"
            )

        return float(REDUCERS[reducer](valid))

    def to_cog(
        self,
        data: xr.DataArray,
        output_path: str,
        compress: str = 'DEFLATE',
        tile_size: int = 512,
        overview_levels: Optional[List[int]] = None,
        nodata: Optional[float] = None
    ) -> str:
        """
        将栅格数据保存为云优化 GeoTIFF (COG) 格式

        Args:
            data: 输入栅格数据
            output_path: 输出文件路径
            compress: 压缩方法 (DEFLATE, LZW, ZSTD, etc.)
            tile_size: 瓦片大小（像素）
            overview_levels: 概览层级列表，None 表示自动生成
            nodata: NoData 值，NaN 像素会被填充为该值

        Returns:
            str: 输出文件路径

        Raises:
            ValueError: 如果保存失败
        """
        temp_path = output_path + '.tmp'
        try:
            output_dir = os.path.dirname(output_path)
            if output_dir:
                os.makedirs(output_dir, exist_ok=True)

            if nodata is not None:
                data = data.fillna(nodata)
                data.rio.write_nodata(nodata, inplace=True)

            data.rio.to_raster(
                temp_path,
                driver='GTiff',
                compress=compress,
                tiled=True,
                blockxsize=tile_size,
                blockysize=tile_size
            )

            with rasterio.open(temp_path) as src:
                profile = src.profile.copy()
                profile.update({
                    'driver': 'GTiff',
                    'compress': compress,
                    'tiled': True,
                    'blockxsize': tile_size,
                    'blockysize': tile_size,
                })
                if nodata is not None:
                    profile['nodata'] = nodata

                if overview_levels is None:
                    max_dim = max(src.width, src.height)
                    overview_levels = []
                    level = 2
                    while max_dim / level > tile_size:
                        overview_levels.append(level)
                        level *= 2

                data_array = src.read()

                with rasterio.open(output_path, 'w', **profile) as dst:
                    dst.write(data_array)
                    if data.name:
                        dst.set_band_description(1, str(data.name))
                    if overview_levels:
                        dst.build_overviews(overview_levels, Resampling.average)
                        dst.update_tags(ns='rio_overview', resampling='average')

            os.remove(temp_path)
            self._validate_cog(output_path, tile_size)

            return output_path

        except Exception as e:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise ValueError(f"Failed to save as COG: {str(e)}")

    def _validate_cog(self, file_path: str, tile_size: int) -> bool:
        """
        验证文件是否按 tile_size 瓦片化

        Raises:
            ValueError: 如果不是有效的 COG
        """
        with rasterio.open(file_path) as src:
            block_shape = src.block_shapes[0]
            if block_shape != (tile_size, tile_size):
                raise ValueError(
                    f"COG validation failed: {file_path} has block shape {block_shape}, "
                    f"expected {tile_size}x{tile_size} tiles"
                )
        return True

    def get_raster_info(self, data: xr.DataArray) -> Dict[str, Any]:
        """
        获取栅格数据信息（用于日志）

        Args:
            data: 栅格数据

        Returns:
            Dict: 栅格信息字典
        """
        values = np.asarray(data.values, dtype=np.float64)
        finite = values[np.isfinite(values)]
        info = {
            'shape': data.shape,
            'dims': list(data.dims),
            'crs': str(data.rio.crs) if data.rio.crs else None,
            'valid_pixels': int(finite.size),
            'dtype': str(data.dtype),
        }
        if finite.size:
            info['min'] = float(finite.min())
            info['max'] = float(finite.max())
            info['mean'] = float(finite.mean())
        return info
