"""
处理与导出相关数据模型
"""
from typing import List, Literal, Optional
import xarray as xr
from pydantic import BaseModel, ConfigDict, Field
from .aoi import GeoJSON


# LST 图层调色板，29 色（蓝 -> 红）
LST_PALETTE: List[str] = [
    '040274', '040281', '0502a3', '0502b8', '0502ce', '0502e6',
    '0602ff', '235cb1', '307ef3', '269db1', '30c8e2', '32d3ef',
    '3be285', '3ff38f', '86e26f', '3ae237', 'b5e22e', 'd6e21f',
    'fff705', 'ffd611', 'ffb613', 'ff8b13', 'ff6e08', 'ff500d',
    'ff0000', 'de0101', 'c21301', 'a71001', '911003',
]


class VisualizationParams(BaseModel):
    """LST 显示参数（仅用于展示，不参与计算）"""
    model_config = ConfigDict(frozen=True)

    min: float = 10.47
    max: float = 60.86
    palette: List[str] = Field(default_factory=lambda: list(LST_PALETTE))


class ExportJob(BaseModel):
    """单个日期 LST 栅格的导出任务描述"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    image: xr.DataArray
    date: str
    description: str
    folder: str = "EarthEngineExports"
    scale: float = Field(30.0, gt=0)
    region: GeoJSON
    file_format: Literal["GeoTIFF"] = "GeoTIFF"

    @property
    def file_name(self) -> str:
        return f"{self.description}.tif"

    @property
    def object_key(self) -> str:
        """目标存储中的对象路径 <folder>/<description>.tif"""
        return f"{self.folder.strip('/')}/{self.file_name}"


class DateOutcome(BaseModel):
    """单个日期的处理结果"""
    date: str
    status: Literal["exported", "failed"]
    description: Optional[str] = None
    output_url: Optional[str] = None
    scene_count: int = 0
    error_kind: Optional[str] = None
    error: Optional[str] = None


class BatchSummary(BaseModel):
    """一次批处理的汇总结果"""
    outcomes: List[DateOutcome] = Field(default_factory=list)
    processing_time_seconds: Optional[float] = None

    @property
    def exported(self) -> List[DateOutcome]:
        return [o for o in self.outcomes if o.status == "exported"]

    @property
    def failed(self) -> List[DateOutcome]:
        return [o for o in self.outcomes if o.status == "failed"]
