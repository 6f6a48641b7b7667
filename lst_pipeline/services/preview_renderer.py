"""
LST 预览图渲染

按固定调色板和显示范围将 LST 栅格渲染为 PNG，仅用于交互/调试查看，
不影响计算结果。
"""
import os
import logging

import numpy as np
import xarray as xr
from matplotlib.colors import ListedColormap
from matplotlib.figure import Figure

from lst_pipeline.models.processing import VisualizationParams

logger = logging.getLogger(__name__)


class PreviewRenderer:
    """预览图渲染器类"""

    def __init__(self, params: VisualizationParams = None, dpi: int = 150):
        self.params = params or VisualizationParams()
        self.dpi = dpi

    def colormap(self) -> ListedColormap:
        """由十六进制调色板生成颜色映射，NaN 显示为透明"""
        cmap = ListedColormap([f"#{c}" for c in self.params.palette], name="lst")
        return cmap.with_extremes(bad=(0, 0, 0, 0))

    def render(self, lst: xr.DataArray, output_path: str, title: str = None) -> str:
        """
        渲染 LST 预览图

        Args:
            lst: LST 栅格 (°C)
            output_path: PNG 输出路径
            title: 图层名称

        Returns:
            str: 输出路径
        """
        output_dir = os.path.dirname(output_path)
        if output_dir:
            os.makedirs(output_dir, exist_ok=True)

        values = np.ma.masked_invalid(np.asarray(lst.values, dtype=np.float64))

        # 不使用 pyplot 全局状态，可在工作线程中调用
        fig = Figure(figsize=(8, 8), dpi=self.dpi)
        ax = fig.add_subplot()
        im = ax.imshow(
            values,
            cmap=self.colormap(),
            vmin=self.params.min,
            vmax=self.params.max,
            interpolation="nearest",
        )
        cb = fig.colorbar(im, ax=ax, shrink=0.8)
        cb.set_label("LST (°C)")
        ax.set_axis_off()
        if title:
            ax.set_title(title)
        fig.savefig(output_path, bbox_inches="tight")

        logger.info(f"Rendered preview {output_path}")
        return output_path
