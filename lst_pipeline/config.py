"""
流程配置

默认值对应 Austin, Texas 周边 10 km、2014-2023 年的 Landsat 8 LST 处理。
批处理运行时通过环境变量覆盖。
"""
import os
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ('true', '1', 'yes')


class PipelineConfig(BaseModel):
    """LST 批处理配置"""
    aoi_lon: float = Field(-97.7431, ge=-180, le=180)
    aoi_lat: float = Field(30.2672, ge=-90, le=90)
    aoi_buffer_m: float = Field(10000.0, gt=0)
    site_name: str = "Austin"
    start_date: datetime = datetime(2014, 1, 1)
    end_date: datetime = datetime(2023, 12, 31)

    stac_url: str = "https://earth-search.aws.element84.com/v1"
    max_items: Optional[int] = Field(None, gt=0)

    s3_bucket: Optional[str] = None
    aws_region: str = "us-west-2"
    export_folder: str = "EarthEngineExports"
    output_dir: Optional[str] = None

    export_scale: float = Field(30.0, gt=0)
    max_pixels: float = Field(1e9, gt=0)
    max_workers: int = Field(4, ge=1)
    export_retries: int = Field(3, ge=1)
    export_retry_delay: float = Field(2.0, ge=0)
    render_previews: bool = False

    @field_validator('site_name')
    @classmethod
    def site_name_safe(cls, v: str) -> str:
        """站点名称用于文件名，不能包含路径分隔符或空白"""
        if not v or any(ch in v for ch in '/\\ '):
            raise ValueError('site_name must be non-empty without spaces or path separators')
        return v

    @field_validator('end_date')
    @classmethod
    def end_after_start(cls, v: datetime, info) -> datetime:
        if 'start_date' in info.data and v < info.data['start_date']:
            raise ValueError('end_date must not be before start_date')
        return v

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """
        从环境变量读取配置，未设置的变量使用默认值

        Returns:
            PipelineConfig
        """
        mapping = {
            'AOI_LON': 'aoi_lon',
            'AOI_LAT': 'aoi_lat',
            'AOI_BUFFER_M': 'aoi_buffer_m',
            'SITE_NAME': 'site_name',
            'START_DATE': 'start_date',
            'END_DATE': 'end_date',
            'STAC_URL': 'stac_url',
            'MAX_ITEMS': 'max_items',
            'S3_BUCKET': 's3_bucket',
            'AWS_REGION': 'aws_region',
            'EXPORT_FOLDER': 'export_folder',
            'OUTPUT_DIR': 'output_dir',
            'EXPORT_SCALE': 'export_scale',
            'MAX_PIXELS': 'max_pixels',
            'MAX_WORKERS': 'max_workers',
            'EXPORT_RETRIES': 'export_retries',
            'EXPORT_RETRY_DELAY': 'export_retry_delay',
        }
        values = {}
        for env_name, field_name in mapping.items():
            value = os.getenv(env_name)
            if value:
                values[field_name] = value

        render_previews = os.getenv('RENDER_PREVIEWS')
        if render_previews:
            values['render_previews'] = _env_bool(render_previews)

        return cls(**values)
