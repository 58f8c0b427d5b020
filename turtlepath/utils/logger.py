"""
日志系统模块
统一的日志配置和求解耗时统计
"""

import logging
import sys
from pathlib import Path
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Dict, Optional

DEFAULT_FORMAT = '[%(asctime)s] %(name)s - %(levelname)s - %(message)s'


def setup_logger(
    name: str,
    log_file: str = None,
    level: int = logging.INFO,
    console: bool = True,
    max_bytes: int = 10*1024*1024,  # 10MB
    backup_count: int = 5,
    fmt: str = DEFAULT_FORMAT,
    datefmt: str = '%Y-%m-%d %H:%M:%S'
) -> logging.Logger:
    """配置日志记录器

    Args:
        name: 日志记录器名称（'turtlepath' 即配置整个包）
        log_file: 日志文件路径（None则只输出到控制台）
        level: 日志级别
        console: 是否输出到控制台
        max_bytes: 单个日志文件最大字节数
        backup_count: 保留的备份文件数量
        fmt: 日志格式
        datefmt: 时间格式

    Returns:
        配置好的Logger对象

    Example:
        >>> nav_logger = setup_logger('turtlepath', 'data/logs/nav.log')
        >>> nav_logger.info('开始导航')
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # 避免重复添加handler
    if logger.handlers:
        return logger

    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)

    # 文件处理器（带轮转）
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # 控制台处理器
    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def default_log_file(base_dir: str = 'data/logs') -> Path:
    """按日期生成日志文件路径"""
    timestamp = datetime.now().strftime('%Y%m%d')
    return Path(base_dir) / f'nav_{timestamp}.log'


class PerformanceLogger:
    """耗时统计

    按名称累计调用次数、总耗时、最小和最大耗时（不保存逐次数据），
    每 report_every 次调用输出一次平均值
    """

    def __init__(self, logger: logging.Logger, report_every: int = 100):
        self.logger = logger
        self.report_every = report_every
        self._stats: Dict[str, dict] = {}

    def log_execution_time(self, func_name: str, duration: float):
        """记录一次执行耗时

        Args:
            func_name: 统计项名称
            duration: 执行时长（秒）
        """
        stats = self._stats.get(func_name)
        if stats is None:
            stats = {'count': 0, 'total': 0.0, 'min': duration, 'max': duration}
            self._stats[func_name] = stats

        stats['count'] += 1
        stats['total'] += duration
        stats['min'] = min(stats['min'], duration)
        stats['max'] = max(stats['max'], duration)

        if stats['count'] % self.report_every == 0:
            self.logger.info(
                f"[性能] {func_name}: 调用{stats['count']}次, "
                f"平均{stats['total'] / stats['count'] * 1000:.2f}ms, "
                f"最大{stats['max'] * 1000:.2f}ms"
            )

    def get_statistics(self, func_name: str) -> Optional[dict]:
        """获取统计 {'count', 'avg', 'min', 'max'}，未记录过返回None"""
        stats = self._stats.get(func_name)
        if stats is None:
            return None
        return {
            'count': stats['count'],
            'avg': stats['total'] / stats['count'],
            'min': stats['min'],
            'max': stats['max']
        }
