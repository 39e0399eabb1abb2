# -*- coding: utf-8 -*-
"""
日志工具

实现功能：
    - setup_logger: 控制台（可选彩色）+ 可选文件输出（可轮转），重复调用时替换旧 handler
    - log_run_header: 扫描开始时输出 N / tdim / conf_num / thermal / 网格范围与种子
    - ProgressLogger: 按格点数或时间间隔输出进度与 ETA
    - PerformanceMonitor: 计时器与计数器（每格点耗时、计算 / 跳过格点数）

多进程 worker 各自调用 setup_logger，并用 worker 编号区分 logger 名称。
"""

from __future__ import annotations

import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Dict, Any

import yaml

__all__ = [
    'setup_logger', 'get_logger', 'log_run_header',
    'ColoredFormatter', 'ProgressLogger', 'PerformanceMonitor',
]

ROOT_LOGGER_NAME = 'sk_spinglass'
_DATEFMT = '%Y-%m-%d %H:%M:%S'


class ColoredFormatter(logging.Formatter):
    """只在格式化期间给 levelname 加颜色码，返回前恢复原 record。"""
    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        orig = record.levelname
        try:
            color = self.COLORS.get(orig)
            if color:
                record.levelname = f"{color}{orig}{self.RESET}"
            return super().format(record)
        finally:
            record.levelname = orig


def _console_handler(level: int, use_color: bool) -> logging.Handler:
    if use_color:
        formatter: logging.Formatter = ColoredFormatter('%(asctime)s | %(levelname)s | %(message)s', datefmt=_DATEFMT)
    else:
        formatter = logging.Formatter('%(asctime)s | %(levelname)-8s | %(message)s', datefmt=_DATEFMT)
    h = logging.StreamHandler(sys.stdout)
    h.setLevel(level)
    h.setFormatter(formatter)
    return h


def _file_handler(path: Path, rotate: Optional[Dict[str, Any]]) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    if rotate:
        h: logging.Handler = RotatingFileHandler(
            str(path),
            maxBytes=int(rotate.get('maxBytes', 10_000_000)),
            backupCount=int(rotate.get('backupCount', 5)),
            encoding='utf-8',
        )
    else:
        h = logging.FileHandler(str(path), mode='a', encoding='utf-8')
    # 文件保留 DEBUG 细节，是否输出由 logger.level 决定
    h.setLevel(logging.DEBUG)
    h.setFormatter(logging.Formatter('%(asctime)s | %(levelname)-8s | %(name)s | %(message)s', datefmt=_DATEFMT))
    return h


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: int | str = logging.INFO,
    log_file: Optional[str] = None,
    use_color: bool = True,
    rotate: Optional[Dict[str, Any]] = None,
) -> logging.Logger:
    """
    配置并返回 logger。重复调用会关闭并替换同名 logger 已有的 handlers。
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"unknown log level: {level!r}")
    logger = logging.getLogger(name)
    logger.setLevel(level)

    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.propagate = False

    # 仅在真实终端启用颜色
    use_color = bool(use_color and hasattr(sys.stdout, 'isatty') and sys.stdout.isatty())
    logger.addHandler(_console_handler(level, use_color))
    if log_file:
        logger.addHandler(_file_handler(Path(log_file), rotate))
    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """获取 logger（不自动配置 handlers）。"""
    return logging.getLogger(name)


def log_run_header(logger: logging.Logger, config_dict: Dict[str, Any], grid_summary: Optional[str] = None) -> None:
    """以 YAML 形式逐行输出本次运行的配置。"""
    logger.info("=" * 70)
    logger.info("SK spin-glass scan")
    if grid_summary:
        logger.info("grid: %s", grid_summary)
    dumped = yaml.safe_dump(config_dict, allow_unicode=True, sort_keys=False)
    for line in dumped.rstrip().splitlines():
        logger.info("  %s", line)
    logger.info("=" * 70)


class ProgressLogger:
    """按完成数或时间间隔打印进度。"""

    def __init__(self, total: int, desc: str = "Progress",
                 logger: Optional[logging.Logger] = None,
                 log_every_n: int = 1,
                 log_every_seconds: Optional[float] = None):
        self.total = int(total)
        self.desc = desc
        self.logger = logger or get_logger()
        self.log_every_n = max(1, int(log_every_n))
        self.log_every_seconds = float(log_every_seconds) if log_every_seconds is not None else None
        self.current = 0
        self.start_time = time.time()
        self.last_log_time = self.start_time

    def update(self, n: int = 1):
        self.current = min(self.total, self.current + int(n))
        now = time.time()
        should = (self.current % self.log_every_n == 0) or (self.current >= self.total)
        if self.log_every_seconds is not None:
            should = should or ((now - self.last_log_time) >= self.log_every_seconds)
        if should:
            self._log_progress(now)
            self.last_log_time = now

    def _log_progress(self, now: float):
        elapsed = max(1e-9, now - self.start_time)
        percent = 100.0 * self.current / max(1, self.total)
        rate = self.current / elapsed
        eta = max(0, self.total - self.current) / max(rate, 1e-9)
        self.logger.info("%s: %d/%d (%.1f%%) | %.3f cells/s | ETA: %.1fs",
                         self.desc, self.current, self.total, percent, rate, eta)

    def finish(self):
        elapsed = max(1e-9, time.time() - self.start_time)
        self.logger.info("%s 完成! 总计: %d | 耗时: %.2fs", self.desc, self.current, elapsed)


class PerformanceMonitor:
    """计时器 / 计数器 / 摘要。"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or get_logger()
        self.timers: Dict[str, float] = {}
        self.totals: Dict[str, float] = {}
        self.counters: Dict[str, int] = {}

    def start_timer(self, name: str):
        self.timers[name] = time.perf_counter()

    def stop_timer(self, name: str, log: bool = False) -> Optional[float]:
        if name not in self.timers:
            self.logger.warning("计时器 '%s' 未启动", name)
            return None
        elapsed = time.perf_counter() - self.timers.pop(name)
        self.totals[name] = self.totals.get(name, 0.0) + elapsed
        if log:
            self.logger.info("%s: %.4f秒", name, elapsed)
        return elapsed

    def count(self, name: str, value: int = 1):
        self.counters[name] = self.counters.get(name, 0) + int(value)

    def get_counter(self, name: str) -> int:
        return int(self.counters.get(name, 0))

    def reset(self):
        self.timers.clear()
        self.totals.clear()
        self.counters.clear()

    def summary(self):
        self.logger.info("=" * 70)
        self.logger.info("性能统计:")
        for k, v in self.counters.items():
            self.logger.info("  %s: %d", k, v)
        for k, v in self.totals.items():
            self.logger.info("  %s: %.2f秒", k, v)
        self.logger.info("=" * 70)
