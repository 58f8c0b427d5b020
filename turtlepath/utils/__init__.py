"""
工具模块
日志配置与周期数据记录
"""

from .logger import setup_logger, PerformanceLogger
from .data_recorder import TickRecorder

__all__ = ['setup_logger', 'PerformanceLogger', 'TickRecorder']
