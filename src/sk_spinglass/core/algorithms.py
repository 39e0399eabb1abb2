# -*- coding: utf-8 -*-
"""
    SK 模型 Metropolis 单自旋更新（全连接，随机选址）

一次 sweep = N 次尝试更新，每次：
    1. 用一个均匀随机数选址 k = floor(N * u)（有放回，独立抽取；同一 sweep 内
       某些位点可能被多次更新，某些一次也没有）
    2. 局部场 Heff = Σ_j J[k, j] * s[j]（对角为零，j = k 项无贡献）
    3. delta = s[k] * Heff
    4. delta <= 0 无条件翻转；否则再抽一个均匀数，u < exp(-2 * delta) 时翻转

温度已折入 sd，β 隐式为 1。翻转位点 k 的能量变化为 2 * delta。

随机数消耗：每次尝试 1 个（选址）+ delta > 0 时 1 个（接受判据），
一次 sweep 至多 2N 个；由 ``UniformPool`` 预取并严格按序消费。
"""

from __future__ import annotations

import math
from typing import Tuple

import numpy as np
from numba import njit

from .rng import RandomSource, UniformPool

__all__ = ["SpinSystem", "metropolis_sweep"]


# -----------------------
# JIT 内核
# -----------------------
@njit(cache=True, fastmath=False)
def _metropolis_sweep_jit(J: np.ndarray, s: np.ndarray, u: np.ndarray, pos: int) -> Tuple[int, int]:
    """
    对 s 原地执行一次 sweep，从 u[pos] 起顺序消费随机数。
    返回 (新的 pos, 接受次数)。
    """
    N = s.shape[0]
    accepts = 0
    for _ in range(N):
        k = int(N * u[pos])
        pos += 1
        if k >= N:
            k = N - 1
        heff = 0.0
        for j in range(N):
            heff += J[k, j] * s[j]
        delta = s[k] * heff
        if delta <= 0.0:
            s[k] = -s[k]
            accepts += 1
        else:
            if u[pos] < math.exp(-2.0 * delta):
                s[k] = -s[k]
                accepts += 1
            pos += 1
    return pos, accepts


def metropolis_sweep(J: np.ndarray, spins: np.ndarray, pool: UniformPool) -> int:
    """单次 sweep 的函数式入口：原地更新 spins，返回接受次数。"""
    N = spins.shape[0]
    pool.reserve(2 * N)
    pos, accepts = _metropolis_sweep_jit(J, spins, pool.buffer, pool.pos)
    pool.advance_to(pos)
    return int(accepts)


# -----------------------
# 自旋系统
# -----------------------
class SpinSystem:
    """
    持有当前自旋构型（int8，长度 N）并对给定相互作用矩阵执行 Metropolis sweep。
    构型在每个格点开始时通过 reset() 置为全 +1，缓冲区复用不重新分配。
    """

    def __init__(self, n_spins: int, rng: RandomSource):
        if int(n_spins) <= 0:
            raise ValueError(f"n_spins must be positive, got {n_spins}")
        self.n_spins = int(n_spins)
        self.rng = rng
        self.spins = np.ones(self.n_spins, dtype=np.int8)
        self.pool = UniformPool(rng, 2 * self.n_spins)
        self.attempts = 0
        self.accepted = 0
        self.sweeps = 0

    def reset(self, value: int = 1) -> None:
        if value not in (-1, 1):
            raise ValueError("spins can only be reset to -1 or +1")
        self.spins.fill(value)

    def _check_couplings(self, J: np.ndarray) -> np.ndarray:
        if J.shape != (self.n_spins, self.n_spins):
            raise ValueError(f"coupling matrix must have shape {(self.n_spins, self.n_spins)}, got {J.shape}")
        if J.dtype != np.float64 or not J.flags["C_CONTIGUOUS"]:
            J = np.ascontiguousarray(J, dtype=np.float64)
        return J

    def sweep(self, J: np.ndarray) -> int:
        J = self._check_couplings(J)
        acc = metropolis_sweep(J, self.spins, self.pool)
        self.attempts += self.n_spins
        self.accepted += acc
        self.sweeps += 1
        return acc

    def run(self, J: np.ndarray, n_sweeps: int) -> int:
        J = self._check_couplings(J)
        total = 0
        for _ in range(int(n_sweeps)):
            total += metropolis_sweep(J, self.spins, self.pool)
        self.attempts += self.n_spins * int(n_sweeps)
        self.accepted += total
        self.sweeps += int(n_sweeps)
        return total

    @property
    def rng_consumed(self) -> int:
        """已被 sweep 实际消费的均匀随机数个数（不含池中预取未用的部分）。"""
        return int(self.pool.consumed)

    @property
    def acceptance_rate(self) -> float:
        return float(self.accepted) / float(self.attempts) if self.attempts else 0.0

    def magnetization(self) -> float:
        return float(np.sum(self.spins, dtype=np.int64)) / float(self.n_spins)
