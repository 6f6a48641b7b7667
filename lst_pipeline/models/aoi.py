"""
AOI (Area of Interest) 与时间范围数据模型
"""
from datetime import datetime
from typing import List, Literal
from pydantic import BaseModel, ConfigDict, field_validator


class DateRange(BaseModel):
    """时间范围模型（闭区间 [start, end]，与 STAC datetime 区间一致）"""
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @field_validator('end')
    @classmethod
    def end_after_start(cls, v: datetime, info) -> datetime:
        """验证结束日期不得早于开始日期"""
        if 'start' in info.data and v < info.data['start']:
            raise ValueError('end must not be before start')
        return v

    def to_stac_interval(self) -> str:
        """转换为 STAC 查询使用的 "start/end" 字符串"""
        return f"{self.start.isoformat()}/{self.end.isoformat()}"


class GeoJSON(BaseModel):
    """GeoJSON 几何对象模型（AOI 在整个流程中作为裁剪和过滤区域）"""
    model_config = ConfigDict(frozen=True)

    type: Literal["Polygon", "MultiPolygon"]
    coordinates: List[List[List[float]]]

    @field_validator('coordinates')
    @classmethod
    def validate_coordinates(cls, v: List[List[List[float]]]) -> List[List[List[float]]]:
        """验证坐标格式和闭合性"""
        if not v:
            raise ValueError('coordinates cannot be empty')

        for ring in v:
            if not ring:
                raise ValueError('coordinate ring cannot be empty')
            # 至少4个点：3个顶点 + 1个闭合点
            if len(ring) < 4:
                raise ValueError('polygon must have at least 4 points (3 vertices + closing point)')

            # 验证坐标格式 [lon, lat]
            for coord in ring:
                if len(coord) < 2:
                    raise ValueError('coordinate must have at least [lon, lat]')
                lon, lat = coord[0], coord[1]
                if not (-180 <= lon <= 180):
                    raise ValueError(f'longitude {lon} out of range [-180, 180]')
                if not (-90 <= lat <= 90):
                    raise ValueError(f'latitude {lat} out of range [-90, 90]')

            if ring[0] != ring[-1]:
                raise ValueError('polygon must be closed (first and last coordinates must be the same)')

        return v
