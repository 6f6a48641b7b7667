"""
数据模型包
"""
from .aoi import (
    DateRange,
    GeoJSON,
)
from .scene import (
    LandsatBand,
    REQUIRED_BANDS,
    SceneRecord,
)
from .processing import (
    LST_PALETTE,
    VisualizationParams,
    ExportJob,
    DateOutcome,
    BatchSummary,
)

__all__ = [
    "DateRange",
    "GeoJSON",
    "LandsatBand",
    "REQUIRED_BANDS",
    "SceneRecord",
    "LST_PALETTE",
    "VisualizationParams",
    "ExportJob",
    "DateOutcome",
    "BatchSummary",
]
