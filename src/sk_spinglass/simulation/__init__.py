# -*- coding: utf-8 -*-
"""
扫描模块
============

scan: SimulationState / ScanController / ScanReport
batch_runner: 命令行入口（scan / run_workers / status / release_claims / collect / plot）
"""

from importlib import import_module
from typing import TYPE_CHECKING

__all__ = ["scan", "batch_runner"]

_lazy = {
    "scan": ".scan",
    "batch_runner": ".batch_runner",
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
    from . import scan, batch_runner
