"""
业务逻辑服务包
"""
from .errors import (
    LSTPipelineError,
    EmptySceneSetError,
    DegenerateStatisticsError,
    PixelBudgetExceededError,
    GridMismatchError,
    ExportFailureError,
    MissingBandError,
)
from .aoi_service import AOIService
from .raster_processor import RasterProcessor
from .temporal_compositor import TemporalCompositor
from .vegetation_index_calculator import VegetationIndexCalculator
from .lst_calculator import LSTCalculator
from .s3_storage_service import S3StorageService
from .export_service import ExportService
from .preview_renderer import PreviewRenderer
from .stac_service import STACQueryService


__all__ = [
    "LSTPipelineError",
    "EmptySceneSetError",
    "DegenerateStatisticsError",
    "PixelBudgetExceededError",
    "GridMismatchError",
    "ExportFailureError",
    "MissingBandError",
    "AOIService",
    "RasterProcessor",
    "TemporalCompositor",
    "VegetationIndexCalculator",
    "LSTCalculator",
    "S3StorageService",
    "ExportService",
    "PreviewRenderer",
    "STACQueryService",
]
