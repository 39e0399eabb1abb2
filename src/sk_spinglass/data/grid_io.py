# -*- coding: utf-8 -*-
"""
结果网格汇总与导出

实现功能：
    - collect_grid: 从逐格点文件读取结果，组装为 (n_mu, n_sd) 表
        • 'mu' / 'sd'                 : 坐标轴
        • 'Xsg' 'Xuni' 'q' 'm' 'c'    : float64 数组，未完成格点为 NaN
        • 'state'                     : int8 数组（CellState：0 未开始 / 1 已认领 / 2 完成）
    - HDF5（gzip 压缩，参数写入 attrs）与 NPZ 的保存 / 读取
    - summarize_table: 每个观测量的有限值个数与范围
"""

from __future__ import annotations

import datetime
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import h5py
import numpy as np

from ..core.grid import ParameterGrid
from ..core.observables import OBSERVABLES
from .result_store import CellState, FileResultStore

logger = logging.getLogger(__name__)

__all__ = [
    'collect_grid',
    'save_grid_hdf5',
    'load_grid_hdf5',
    'save_grid_npz',
    'load_grid_npz',
    'summarize_table',
]

_AXES = ('mu', 'sd')


def collect_grid(store: FileResultStore, grid: ParameterGrid) -> Dict[str, Any]:
    """读取全部格点条目并组装成表；缺失或仅认领的格点填 NaN。"""
    n_mu, n_sd = grid.shape
    table: Dict[str, Any] = {
        'mu': np.array(grid.mu, dtype=np.float64),
        'sd': np.array(grid.sd, dtype=np.float64),
        'state': np.zeros((n_mu, n_sd), dtype=np.int8),
    }
    for name in OBSERVABLES:
        table[name] = np.full((n_mu, n_sd), np.nan, dtype=np.float64)

    for cell in grid.cells():
        st = store.state(cell.a, cell.b)
        table['state'][cell.a, cell.b] = int(st)
        if st != CellState.DONE:
            continue
        res = store.read(cell.a, cell.b)
        if res is None:
            # 读取前被其它进程重新置空
            table['state'][cell.a, cell.b] = int(CellState.CLAIMED)
            continue
        for name in OBSERVABLES:
            table[name][cell.a, cell.b] = getattr(res, name)

    n_done = int(np.count_nonzero(table['state'] == int(CellState.DONE)))
    logger.info("collected %d/%d finished cells from %s", n_done, grid.n_cells, store.root)
    return table


def _check_table(table: Dict[str, Any]) -> None:
    missing = [k for k in _AXES + OBSERVABLES if k not in table]
    if missing:
        raise KeyError(f"grid table is missing keys: {missing}")
    shape = (np.asarray(table['mu']).size, np.asarray(table['sd']).size)
    for name in OBSERVABLES:
        if np.asarray(table[name]).shape != shape:
            raise ValueError(f"{name} has shape {np.asarray(table[name]).shape}, expected {shape}")


def save_grid_hdf5(table: Dict[str, Any],
                   filepath: Union[str, Path],
                   attrs: Optional[Dict[str, Any]] = None,
                   compression: Optional[str] = 'gzip',
                   compression_opts: Optional[int] = 4) -> Path:
    """保存到 HDF5：坐标轴不压缩，观测量与 state 用 gzip 压缩；attrs 写入运行参数。"""
    _check_table(table)
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    if compression == 'lzf':
        compression_opts = None

    with h5py.File(filepath, 'w') as f:
        for ax in _AXES:
            f.create_dataset(ax, data=np.asarray(table[ax], dtype=np.float64))
        for name in OBSERVABLES + ('state',):
            if name not in table:
                continue
            f.create_dataset(name, data=np.asarray(table[name]),
                             compression=compression, compression_opts=compression_opts)
        for k, v in (attrs or {}).items():
            if isinstance(v, np.integer):
                v = int(v)
            elif isinstance(v, np.floating):
                v = float(v)
            elif v is None:
                v = 'None'
            elif not isinstance(v, (int, float, str, bool)):
                v = str(v)
            f.attrs[k] = v
        f.attrs['created_at'] = str(datetime.datetime.now())
    logger.info("grid table saved: %s", filepath)
    return filepath


def load_grid_hdf5(filepath: Union[str, Path]) -> Dict[str, Any]:
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")
    table: Dict[str, Any] = {}
    with h5py.File(filepath, 'r') as f:
        for name in _AXES + OBSERVABLES + ('state',):
            if name in f:
                table[name] = f[name][...]
        table['attrs'] = {k: (v.decode() if isinstance(v, bytes) else v) for k, v in f.attrs.items()}
    _check_table(table)
    return table


def save_grid_npz(table: Dict[str, Any], filepath: Union[str, Path], compressed: bool = True) -> Path:
    _check_table(table)
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    arrays = {k: np.asarray(table[k]) for k in _AXES + OBSERVABLES + ('state',) if k in table}
    if compressed:
        np.savez_compressed(filepath, **arrays)
    else:
        np.savez(filepath, **arrays)
    # np.savez 会自动追加 .npz 后缀
    if filepath.suffix != '.npz':
        filepath = filepath.with_name(filepath.name + '.npz')
    logger.info("grid table saved: %s", filepath)
    return filepath


def load_grid_npz(filepath: Union[str, Path]) -> Dict[str, Any]:
    with np.load(filepath, allow_pickle=False) as data:
        table = {k: data[k] for k in data.files}
    _check_table(table)
    return table


def summarize_table(table: Dict[str, Any]) -> Dict[str, Dict[str, float]]:
    """每个观测量：有限值个数、最小值、最大值。"""
    out: Dict[str, Dict[str, float]] = {}
    for name in OBSERVABLES:
        arr = np.asarray(table[name], dtype=np.float64)
        finite = arr[np.isfinite(arr)]
        out[name] = {
            'count': int(finite.size),
            'min': float(finite.min()) if finite.size else float('nan'),
            'max': float(finite.max()) if finite.size else float('nan'),
        }
    return out
