"""
数据记录模块
记录每个控制周期的结果（位姿、航点、求解状态、速度指令），支持离线分析
"""

import json
import logging
import pickle
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional


class TickRecorder:
    """周期数据记录器

    Example:
        >>> recorder = TickRecorder()
        >>> recorder.start_recording('sim_run', format='json')
        >>> loop = ControlLoop(..., recorder=recorder)
        >>> loop.run()
        >>> path = recorder.stop_recording()
        >>> frames = recorder.load_recording(path)
    """

    def __init__(self, data_dir: str = 'data/recordings'):
        """初始化数据记录器

        Args:
            data_dir: 数据保存目录
        """
        self.data_dir = Path(data_dir)

        self.recording = False
        self.current_file: Optional[Path] = None
        self.format = 'json'
        self.start_time = 0.0
        self.frames: List[dict] = []

        self.stats = {
            'tick_count': 0,
            'failure_count': 0,
            'fallback_count': 0,
            'duration': 0.0
        }
        self.logger = logging.getLogger(__name__)

    def start_recording(self, filename: str, format: str = 'json') -> bool:
        """开始记录

        Args:
            filename: 文件名（自动追加时间戳和扩展名）
            format: 'json' 或 'pickle'
        """
        if self.recording:
            self.logger.warning("[RECORDER] 已在记录中，请先停止")
            return False
        if format not in ('json', 'pickle'):
            raise ValueError(f"不支持的记录格式: {format}")

        self.data_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        base_name = Path(filename).stem
        ext = '.pkl' if format == 'pickle' else '.json'

        self.current_file = self.data_dir / f"{base_name}_{timestamp}{ext}"
        self.format = format
        self.recording = True
        self.start_time = time.time()
        self.frames = []

        for key in self.stats:
            self.stats[key] = 0

        self.logger.info(f"[RECORDER] 开始记录: {self.current_file}")
        return True

    def record(self, tick_result):
        """记录一个周期的TickResult"""
        if not self.recording:
            return

        frame = tick_result.to_dict()
        frame['timestamp'] = time.time() - self.start_time
        self.frames.append(frame)

        self.stats['tick_count'] += 1
        if frame['status'] != 'success':
            self.stats['failure_count'] += 1
        if frame['fallback_applied']:
            self.stats['fallback_count'] += 1

    def stop_recording(self) -> Optional[Path]:
        """停止记录并保存

        Returns:
            保存的文件路径，未在记录中返回None
        """
        if not self.recording:
            self.logger.warning("[RECORDER] 未在记录中")
            return None

        self.recording = False
        self.stats['duration'] = time.time() - self.start_time

        data_to_save = {
            'version': '1.0',
            'start_time': self.start_time,
            'stats': self.stats,
            'frames': self.frames
        }

        if self.format == 'pickle':
            with open(self.current_file, 'wb') as f:
                pickle.dump(data_to_save, f)
        else:
            with open(self.current_file, 'w', encoding='utf-8') as f:
                json.dump(data_to_save, f, indent=2)

        self.logger.info(
            f"[RECORDER] 记录完成: {self.current_file} "
            f"({self.stats['tick_count']}个周期, 求解失败{self.stats['failure_count']}次)")
        return self.current_file

    def load_recording(self, filename) -> List[dict]:
        """加载记录文件

        Args:
            filename: 文件路径（不存在时在data_dir中查找）

        Returns:
            周期帧列表

        Raises:
            FileNotFoundError: 文件不存在
        """
        filepath = Path(filename)
        if not filepath.exists():
            filepath = self.data_dir / filename
        if not filepath.exists():
            raise FileNotFoundError(f"记录文件不存在: {filename}")

        if filepath.suffix == '.pkl':
            with open(filepath, 'rb') as f:
                data = pickle.load(f)
        else:
            with open(filepath, 'r', encoding='utf-8') as f:
                data = json.load(f)

        self.frames = data['frames']
        self.stats = data['stats']
        self.logger.info(f"[RECORDER] 加载成功: {filepath}, 共{len(self.frames)}帧")
        return self.frames

    def get_statistics(self) -> dict:
        return self.stats.copy()
