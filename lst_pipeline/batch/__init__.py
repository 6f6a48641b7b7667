"""
批处理入口
"""
