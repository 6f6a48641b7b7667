"""
LST 处理流程错误类型

EmptySceneSetError、DegenerateStatisticsError、GridMismatchError 为单日期
领域错误：只影响出错的日期，批处理继续执行其余日期。
ExportFailureError 在重试次数用尽后抛出，同样只影响该日期的导出。
"""


class LSTPipelineError(Exception):
    """LST 处理错误基类"""
    pass


class EmptySceneSetError(LSTPipelineError):
    """指定日期没有符合条件的影像，无法合成"""
    pass


class DegenerateStatisticsError(LSTPipelineError):
    """区域统计无有效像素，或 NDVI 最大值等于最小值"""
    pass


class PixelBudgetExceededError(LSTPipelineError):
    """区域统计的像素数超过上限 (max_pixels)"""
    pass


class GridMismatchError(LSTPipelineError):
    """参与逐像素运算的栅格空间网格不一致"""
    pass


class ExportFailureError(LSTPipelineError):
    """导出任务被拒绝或重试后仍失败"""
    pass


class MissingBandError(LSTPipelineError):
    """影像缺少必需波段"""
    pass
