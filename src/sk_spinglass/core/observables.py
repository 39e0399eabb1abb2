# -*- coding: utf-8 -*-
"""
    构型平均统计量累加与格点观测量计算

本模块把一个格点（mu, sd）内 conf_num 个构型的轨迹累加为五个热力学观测量：
    Xsg  : 自旋玻璃磁化率   Σ_ij ProdC_ij / (N * conf_num)
    Xuni : 均匀磁化率       Σ_ij SumC_ij  / (N * conf_num)
    q    : 自旋玻璃序参量   sgop / (N * tdim^2 * conf_num)
    m    : 磁化强度         |mag / (N * tdim * conf_num)|
    c    : 比热             (SumProdE / tdim - ProdSumE / tdim^2) / (N * conf_num)

每个构型的累加：
    aux_i     = Σ_t s_i(t)                       (时间方向带符号求和)
    mag      += Σ_i aux_i,   sgop += Σ_i aux_i^2
    cov(i,j)  = (1/tdim) Σ_t s_i s_j - (1/tdim^2) aux_i aux_j
    SumC     += cov,         ProdC += cov^2      (对称)
    E(t)      = - Σ_{i<=j} J_ij s_i(t) s_j(t),   t = 1 .. tdim-1（t = 0 不计入）
    ProdSumE += (Σ_t E)^2,   SumProdE += Σ_t E^2

精度：自旋乘积和在 float64 中按整数精确计算（tdim < 2^53），
因此协方差矩阵严格对称。

内存：StatisticsAccumulator 在构造时一次性分配全部工作区（float64 轨迹、协方差、
外积、上三角 J、J·S 乘积、能量序列），accumulate() 只做原地运算，不再分配大数组。
"""

from __future__ import annotations

from dataclasses import dataclass, astuple
from typing import Any, Dict, Optional, Tuple

import numpy as np

__all__ = [
    "GridCellResult",
    "StatisticsAccumulator",
    "covariance",
    "covariance_matrix",
    "trajectory_energies",
    "OBSERVABLES",
]

OBSERVABLES = ("Xsg", "Xuni", "q", "m", "c")


@dataclass(frozen=True)
class GridCellResult:
    """单个格点的 7 元组结果，写入后不可变。"""
    mu: float
    sd: float
    Xsg: float
    Xuni: float
    q: float
    m: float
    c: float

    def as_tuple(self) -> Tuple[float, ...]:
        return tuple(float(v) for v in astuple(self))

    def as_dict(self) -> Dict[str, float]:
        return dict(zip(("mu", "sd") + OBSERVABLES, self.as_tuple()))

    def to_line(self, float_format: str = "%f") -> str:
        return "\t".join(float_format % v for v in self.as_tuple())

    @classmethod
    def from_line(cls, line: str) -> "GridCellResult":
        fields = line.split()
        if len(fields) != 7:
            raise ValueError(f"expected 7 whitespace-delimited fields, got {len(fields)}: {line!r}")
        return cls(*(float(x) for x in fields))


# ---------------------------------------------------------------------
# 单轨迹辅助函数
# ---------------------------------------------------------------------
def covariance(trajectory: Any, i: int, j: int) -> float:
    """cov(i, j) = (1/T) Σ_t s_i s_j - (1/T^2) (Σ_t s_i)(Σ_t s_j)。"""
    a = np.asarray(trajectory)
    T = a.shape[1]
    si = a[i].astype(np.int64)
    sj = a[j].astype(np.int64)
    P = int(np.dot(si, sj))
    Qi = int(si.sum())
    Qj = int(sj.sum())
    return P / (1.0 * T) - Qi * Qj / (1.0 * T * T)


def covariance_matrix(trajectory: Any) -> np.ndarray:
    """整条轨迹 (N, T) 的成对协方差矩阵 (N, N)。"""
    a = np.asarray(trajectory, dtype=np.float64)
    T = a.shape[1]
    aux = a.sum(axis=1)
    return (a @ a.T) / (1.0 * T) - np.outer(aux, aux) / (1.0 * T * T)


def trajectory_energies(trajectory: Any, J: Any) -> np.ndarray:
    """
    E(t) = - Σ_{i<=j} J_ij s_i(t) s_j(t)，对 t = 1 .. T-1 返回长度 T-1 的数组。
    每个无序对只计一次（对角为零，i == j 无贡献）。
    """
    S = np.asarray(trajectory, dtype=np.float64)[:, 1:]
    Ju = np.triu(np.asarray(J, dtype=np.float64))
    return -np.einsum("it,it->t", Ju @ S, S)


# ---------------------------------------------------------------------
# 构型平均累加器
# ---------------------------------------------------------------------
class StatisticsAccumulator:
    """
    持有一个格点内跨构型的全部累加量；reset() 原地清零，缓冲区跨格点复用。
    """

    def __init__(self, n_spins: int, tdim: int,
                 sum_c: Optional[np.ndarray] = None, prod_c: Optional[np.ndarray] = None):
        self.n_spins = int(n_spins)
        self.tdim = int(tdim)
        if self.n_spins <= 0 or self.tdim <= 0:
            raise ValueError("n_spins and tdim must be positive")
        shape = (self.n_spins, self.n_spins)
        self.SumC = sum_c if sum_c is not None else np.zeros(shape, dtype=np.float64)
        self.ProdC = prod_c if prod_c is not None else np.zeros(shape, dtype=np.float64)
        for name, buf in (("SumC", self.SumC), ("ProdC", self.ProdC)):
            if buf.shape != shape or buf.dtype != np.float64:
                raise ValueError(f"{name} buffer must be float64 with shape {shape}")
        # 工作区：float64 轨迹、协方差、外积、上三角 J 与 J·S
        self._S = np.empty((self.n_spins, self.tdim), dtype=np.float64)
        self._aux = np.empty(self.n_spins, dtype=np.float64)
        self._cov = np.empty(shape, dtype=np.float64)
        self._outer = np.empty(shape, dtype=np.float64)
        self._upper = np.triu(np.ones(shape, dtype=np.float64))
        self._Ju = np.empty(shape, dtype=np.float64)
        self._JS = np.empty((self.n_spins, self.tdim), dtype=np.float64)
        self._E = np.empty(self.tdim, dtype=np.float64)
        self.reset()

    def reset(self) -> None:
        self.SumC.fill(0.0)
        self.ProdC.fill(0.0)
        self.mag = 0.0
        self.sgop = 0.0
        self.ProdSumE = 0.0
        self.SumProdE = 0.0
        self.n_configs = 0

    # ------------------------------------------------------------------
    def accumulate(self, trajectory: np.ndarray, J: np.ndarray) -> None:
        traj = np.asarray(trajectory)
        if traj.shape != (self.n_spins, self.tdim):
            raise ValueError(f"trajectory must have shape {(self.n_spins, self.tdim)}, got {traj.shape}")
        if np.shape(J) != self._Ju.shape:
            raise ValueError(f"coupling matrix must have shape {self._Ju.shape}, got {np.shape(J)}")
        S = self._S
        np.copyto(S, traj, casting="unsafe")
        T = float(self.tdim)

        # 磁化 / 序参量
        aux = S.sum(axis=1, out=self._aux)
        self.mag += float(aux.sum())
        self.sgop += float(np.dot(aux, aux))

        # 协方差
        cov = self._cov
        np.matmul(S, S.T, out=cov)
        cov /= T
        outer = np.outer(aux, aux, out=self._outer)
        outer /= T * T
        cov -= outer
        self.SumC += cov
        np.multiply(cov, cov, out=cov)
        self.ProdC += cov

        # 能量涨落（t = 0 不计入）
        if self.tdim > 1:
            self._energies(J)
            E = self._E[1:]
            sumE = float(E.sum())
            sumE2 = float(np.dot(E, E))
            self.ProdSumE += sumE * sumE
            self.SumProdE += sumE2

        self.n_configs += 1

    def _energies(self, J: np.ndarray) -> np.ndarray:
        """E(t) 写入 self._E，与 trajectory_energies 相同但全部原地计算（含 t = 0 列）。"""
        Ju = np.multiply(J, self._upper, out=self._Ju)
        JS = np.matmul(Ju, self._S, out=self._JS)
        np.multiply(JS, self._S, out=JS)
        E = JS.sum(axis=0, out=self._E)
        np.negative(E, out=E)
        return E

    # ------------------------------------------------------------------
    def finalize(self, mu: float, sd: float) -> GridCellResult:
        if self.n_configs <= 0:
            raise ValueError("finalize() called before any configuration was accumulated")
        N = float(self.n_spins)
        T = float(self.tdim)
        K = float(self.n_configs)

        m = abs(self.mag / (N * T * K))
        q = self.sgop / (N * T * T * K)
        Xuni = float(self.SumC.sum()) / (N * K)
        Xsg = float(self.ProdC.sum()) / (N * K)
        c = (self.SumProdE / T - self.ProdSumE / (T * T)) / (N * K)
        return GridCellResult(float(mu), float(sd), Xsg, Xuni, q, m, c)

    def snapshot(self) -> Dict[str, float]:
        """当前累加器标量（调试 / 日志）。"""
        return {
            "n_configs": int(self.n_configs),
            "mag": float(self.mag),
            "sgop": float(self.sgop),
            "ProdSumE": float(self.ProdSumE),
            "SumProdE": float(self.SumProdE),
        }
