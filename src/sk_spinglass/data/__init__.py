# -*- coding: utf-8 -*-
"""
数据模块
============

result_store: 每格点一个文件的结果存储
grid_io: 结果网格汇总与 HDF5 / NPZ 导出
"""

from importlib import import_module
from typing import TYPE_CHECKING

__all__ = ["result_store", "grid_io"]

_lazy = {
    "result_store": ".result_store",
    "grid_io": ".grid_io",
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
    from . import result_store, grid_io
