# -*- coding: utf-8 -*-
"""
绘图封装（SK 自旋玻璃相图）

实现功能：
    - plot_phase_diagram: 在 (mu, sd) 平面上以热图显示单个观测量，未完成格点留白
    - plot_all_observables: 五个观测量（Xsg, Xuni, q, m, c）逐一出图并保存
    - plot_observable_cuts: 固定 sd 的若干条 mu 截线
    - save_figure: 多格式保存
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np

from ..core.observables import OBSERVABLES

__all__ = ['plot_phase_diagram', 'plot_all_observables', 'plot_observable_cuts', 'save_figure']

LABELS = {
    'Xsg': r'spin-glass susceptibility $\chi_{SG}$',
    'Xuni': r'uniform susceptibility $\chi$',
    'q': r'order parameter $q$',
    'm': r'magnetization $m$',
    'c': r'specific heat $c$',
}


def save_figure(
    fig: Optional[plt.Figure] = None,
    path: str | os.PathLike | None = None,
    *,
    dpi: int = 300,
    tight: bool = True,
    create_dir: bool = True,
    formats: Optional[List[str] | Tuple[str, ...]] = None,
) -> str | List[str]:
    """
    图片保存助手。path 带后缀时按该后缀保存；否则按 formats（默认 png）保存多个文件。
    """
    if path is None:
        raise ValueError("save_figure: 需要提供保存路径 path。")
    fig = fig if fig is not None else plt.gcf()
    path = Path(path)
    if create_dir:
        path.parent.mkdir(parents=True, exist_ok=True)

    if formats is None:
        if path.suffix:
            formats = [path.suffix.lstrip('.').lower()]
            stem = path.with_suffix('')
        else:
            formats = ['png']
            stem = path
    else:
        formats = [f.lstrip('.').lower() for f in formats]
        stem = path.with_suffix('')

    if tight:
        fig.tight_layout()

    saved: List[str] = []
    for ext in formats:
        out_path = stem.with_suffix('.' + ext)
        fig.savefig(out_path, dpi=dpi, bbox_inches='tight' if tight else None,
                    facecolor=fig.get_facecolor(), edgecolor='none')
        saved.append(str(out_path))
    return saved[0] if len(saved) == 1 else saved


def _maybe_save(fig: plt.Figure, save_path: Optional[str], dpi: int = 300, logger=None):
    if not save_path:
        return None
    saved = save_figure(fig=fig, path=save_path, dpi=dpi)
    if logger is not None:
        logger.info("图像已保存: %s", saved)
    return saved


def _axis_extent(values: np.ndarray) -> Tuple[float, float]:
    """格点中心 → 像素边界（单点轴时给一个单位宽度）。"""
    v = np.asarray(values, dtype=float).ravel()
    if v.size == 1:
        return float(v[0]) - 0.5, float(v[0]) + 0.5
    half = 0.5 * (v[1] - v[0])
    return float(v[0] - half), float(v[-1] + half)


def plot_phase_diagram(
    table: Dict[str, Any],
    observable: str = 'm',
    save_path: Optional[str] = None,
    dpi: int = 300,
    cmap: str = 'viridis',
    ax: Optional[plt.Axes] = None,
    logger=None,
):
    """
    (mu, sd) 相图：横轴 mu，纵轴 sd，颜色为观测量；NaN（未完成）格点不着色。
    table 需包含 'mu', 'sd' 与 observable 对应的 (n_mu, n_sd) 数组。
    """
    if observable not in OBSERVABLES:
        raise ValueError(f"unknown observable {observable!r}; choose from {OBSERVABLES}")
    for k in ('mu', 'sd', observable):
        if k not in table:
            raise KeyError(f"table 缺少键 '{k}'")
    mu = np.asarray(table['mu'], dtype=float).ravel()
    sd = np.asarray(table['sd'], dtype=float).ravel()
    data = np.asarray(table[observable], dtype=float)
    if data.shape != (mu.size, sd.size):
        raise ValueError(f"{observable} 形状应为 {(mu.size, sd.size)}，实际 {data.shape}")

    if ax is None:
        fig, ax = plt.subplots(figsize=(8, 6))
    else:
        fig = ax.figure

    # imshow 的行对应纵轴 → 转置成 (n_sd, n_mu)
    masked = np.ma.masked_invalid(data.T)
    x0, x1 = _axis_extent(mu)
    y0, y1 = _axis_extent(sd)
    im = ax.imshow(masked, extent=[x0, x1, y0, y1], aspect='auto', origin='lower', cmap=cmap)
    fig.colorbar(im, ax=ax, label=LABELS[observable])

    ax.set_xlabel(r'coupling mean $\mu$', fontsize=12)
    ax.set_ylabel(r'coupling spread $\sigma$', fontsize=12)
    ax.set_title(f'SK model: {observable}', fontsize=14, fontweight='bold')
    ax.tick_params(labelsize=10)

    _maybe_save(fig, save_path, dpi=dpi, logger=logger)
    return fig


def plot_all_observables(
    table: Dict[str, Any],
    save_dir: Optional[str | os.PathLike] = None,
    fmt: str = 'png',
    dpi: int = 150,
    logger=None,
) -> Dict[str, Any]:
    """逐个观测量绘制相图；给出 save_dir 时保存为 phase_<obs>.<fmt> 并关闭图像。"""
    out: Dict[str, Any] = {}
    for name in OBSERVABLES:
        path = str(Path(save_dir) / f'phase_{name}.{fmt}') if save_dir is not None else None
        fig = plot_phase_diagram(table, name, save_path=path, dpi=dpi, logger=logger)
        if path is not None:
            out[name] = path
            plt.close(fig)
        else:
            out[name] = fig
    return out


def plot_observable_cuts(
    table: Dict[str, Any],
    observable: str = 'm',
    sd_indices: Optional[Sequence[int]] = None,
    save_path: Optional[str] = None,
    dpi: int = 300,
    logger=None,
):
    """固定若干 sd 的 mu 截线；默认取首 / 中 / 末三条。"""
    if observable not in OBSERVABLES:
        raise ValueError(f"unknown observable {observable!r}; choose from {OBSERVABLES}")
    mu = np.asarray(table['mu'], dtype=float).ravel()
    sd = np.asarray(table['sd'], dtype=float).ravel()
    data = np.asarray(table[observable], dtype=float)
    if sd_indices is None:
        sd_indices = sorted({0, sd.size // 2, sd.size - 1})

    fig, ax = plt.subplots(figsize=(8, 5))
    for b in sd_indices:
        ax.plot(mu, data[:, b], marker='o', ms=3, lw=1.2, label=rf'$\sigma$ = {sd[b]:.4g}')
    ax.set_xlabel(r'$\mu$', fontsize=12)
    ax.set_ylabel(LABELS[observable], fontsize=12)
    ax.grid(True, alpha=0.3)
    ax.legend(fontsize=9)
    _maybe_save(fig, save_path, dpi=dpi, logger=logger)
    return fig
