# -*- coding: utf-8 -*-
"""
工具模块
============

config: 配置（预设 / 文件 / 环境变量 / CLI 合并）
logger: 日志、进度与计时
"""

from importlib import import_module
from typing import TYPE_CHECKING

__all__ = ["config", "logger"]

_lazy = {
    "config": ".config",
    "logger": ".logger",
}


def __getattr__(name: str):
    if name in _lazy:
        mod = import_module(_lazy[name], __name__)
        globals()[name] = mod
        return mod
    raise AttributeError(f"{__name__} has no attribute {name!r}")


def __dir__():
    return sorted(list(__all__))


if TYPE_CHECKING:
    from . import config, logger
