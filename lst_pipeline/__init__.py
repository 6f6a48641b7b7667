"""
Landsat 8 日地表温度 (LST) 批处理
"""

__version__ = "0.1.0"
