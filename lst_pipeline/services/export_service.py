"""
LST 栅格导出服务

为每个日期生成唯一命名的导出任务，将 LST 保存为 COG (GeoTIFF)，
配置了 S3 存储时上传到 <folder>/<description>.tif，否则保存在本地输出目录。
导出失败时按指数退避重试，超过次数后抛出 ExportFailureError。
"""
import os
import time
import logging
import tempfile
from typing import Callable, Optional

import numpy as np
import xarray as xr
from botocore.exceptions import BotoCoreError, ClientError

from lst_pipeline.models.aoi import GeoJSON
from lst_pipeline.models.processing import ExportJob
from lst_pipeline.services.errors import DegenerateStatisticsError, ExportFailureError
from lst_pipeline.services.raster_processor import RasterProcessor
from lst_pipeline.services.s3_storage_service import S3StorageService

logger = logging.getLogger(__name__)

EXPORT_NODATA = -9999.0


class ExportService:
    """导出服务类"""

    def __init__(
        self,
        raster_processor: Optional[RasterProcessor] = None,
        storage: Optional[S3StorageService] = None,
        output_dir: Optional[str] = None,
        site_name: str = "Austin",
        folder: str = "EarthEngineExports",
        scale: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        tile_size: int = 512,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        初始化导出服务

        Args:
            raster_processor: 栅格处理器（用于写 COG）
            storage: S3 存储服务，None 表示只保存到本地
            output_dir: 本地输出目录，None 表示使用临时目录
            site_name: 站点名称，写入文件名
            folder: 目标文件夹（S3 前缀或本地子目录）
            scale: 导出像元大小（米）
            max_retries: 最大尝试次数
            retry_delay: 首次重试等待秒数，之后按 2 的幂递增
            tile_size: COG 瓦片大小（像素）
            sleep: 等待函数
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.raster_processor = raster_processor or RasterProcessor()
        self.storage = storage
        self.output_dir = output_dir or tempfile.mkdtemp(prefix="daily_lst_")
        self.site_name = site_name
        self.folder = folder
        self.scale = scale
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.tile_size = tile_size
        self.sleep = sleep

    def build_description(self, date: str) -> str:
        """导出任务名称，唯一编码日期"""
        return f"LST_landsat8_{self.site_name}_{date}_GeoTIFF"

    def build_job(self, lst: xr.DataArray, date: str, aoi: GeoJSON) -> ExportJob:
        """
        构建单个日期的导出任务

        Args:
            lst: LST 栅格
            date: 日期 (YYYY-MM-DD)
            aoi: 导出区域

        Returns:
            ExportJob
        """
        return ExportJob(
            image=lst,
            date=date,
            description=self.build_description(date),
            folder=self.folder,
            scale=self.scale,
            region=aoi,
            file_format="GeoTIFF",
        )

    def local_path(self, job: ExportJob) -> str:
        return os.path.join(self.output_dir, job.folder, job.file_name)

    def submit(self, job: ExportJob) -> str:
        """
        提交导出任务

        Args:
            job: 导出任务

        Returns:
            str: 输出位置（s3:// URL 或本地路径）

        Raises:
            DegenerateStatisticsError: 如果栅格没有任何有效像素
            ExportFailureError: 如果重试后仍然失败
        """
        values = np.asarray(job.image.values, dtype=np.float64)
        if not np.isfinite(values).any():
            raise DegenerateStatisticsError(
                f"Refusing to export {job.description}: raster has no valid pixels"
            )

        last_error = None
        for attempt in range(self.max_retries):
            try:
                logger.info(
                    f"Exporting {job.description} (attempt {attempt + 1}/{self.max_retries})"
                )
                return self._export(job)
            except (ValueError, OSError, ClientError, BotoCoreError) as e:
                last_error = e
                if attempt < self.max_retries - 1:
                    wait_time = self.retry_delay * (2 ** attempt)
                    logger.warning(
                        f"Export of {job.description} failed (attempt {attempt + 1}/{self.max_retries}): "
                        f"{e}. Retrying in {wait_time} seconds..."
                    )
                    self.sleep(wait_time)

        logger.error(f"Export of {job.description} failed after {self.max_retries} attempts: {last_error}")
        raise ExportFailureError(
            f"Export of {job.description} failed after {self.max_retries} attempts: {last_error}"
        ) from last_error

    def _export(self, job: ExportJob) -> str:
        local_path = self.local_path(job)
        self.raster_processor.to_cog(
            job.image,
            local_path,
            compress='DEFLATE',
            tile_size=self.tile_size,
            nodata=EXPORT_NODATA
        )

        if self.storage is None:
            logger.info(f"Saved {job.description} to {local_path}")
            return local_path

        return self.storage.upload_file(
            local_path,
            job.object_key,
            metadata={
                'date': job.date,
                'scale': job.scale,
                'format': job.file_format,
                'units': 'degC',
            }
        )

    def cancel(self, job: ExportJob) -> bool:
        """
        撤销单个日期的导出结果，不影响其他日期

        Returns:
            bool: 是否删除了已导出的文件
        """
        removed = False
        local_path = self.local_path(job)
        if os.path.exists(local_path):
            os.remove(local_path)
            removed = True

        if self.storage is not None and self.storage.file_exists(job.object_key):
            self.storage.delete_file(job.object_key)
            removed = True

        logger.info(f"Cancelled export {job.description} (removed={removed})")
        return removed
