# -*- coding: utf-8 -*-
"""
网格扫描控制器（可断点续跑，多进程可共享同一结果目录）

实现功能：
    - SimulationState: 持有单进程全部工作缓冲区（自旋、轨迹、J、SumC / ProdC 累加器），
      在格点之间 reset() 复用而不重新分配；分配失败转换为 ResourceExhaustion
    - ScanController.run(): 按 mu 外层、sd 内层升序遍历网格：
        • 已存在条目（Claimed 或 Done）→ 跳过
        • 认领失败（其它进程抢先创建）→ 跳过
        • 否则计算 conf_num 个构型并写入结果
    - ScanController.run_cell(): 只计算一个格点，不接触存储

每个构型：重新抽取 J → 热化 thermal 次 sweep → 采样 tdim 次 sweep → 累加统计量。
自旋在每个格点开始时置为全 +1，同一格点内的构型之间不重置（延续上一构型的末态）。

致命错误（ResourceExhaustion / StoreUnavailable）直接向上传播，不做单格点隔离；
构型循环中的 MemoryError 同样转换为 ResourceExhaustion；正在计算的格点保持为空标记文件。
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..core.algorithms import SpinSystem
from ..core.couplings import InteractionMatrixGenerator
from ..core.grid import GridCell, ParameterGrid
from ..core.observables import GridCellResult, StatisticsAccumulator
from ..core.rng import NumpyRandomSource, RandomSource, resolve_seed
from ..core.sampler import Sampler
from ..data.result_store import FileResultStore
from ..errors import ResourceExhaustion
from ..utils.config import Config, SimulationConfig
from ..utils.logger import PerformanceMonitor, ProgressLogger, log_run_header

__all__ = ["SimulationState", "ScanController", "ScanReport", "make_random_source"]


def make_random_source(sim_cfg: SimulationConfig, worker_index: int = 0) -> NumpyRandomSource:
    """按种子策略为本进程创建随机数来源。"""
    seed = resolve_seed(sim_cfg.seed_policy, sim_cfg.seed, worker_index=worker_index)
    return NumpyRandomSource(seed=seed, bit_generator=sim_cfg.bit_generator)


@dataclass
class SimulationState:
    """单进程工作缓冲区聚合。"""
    system: SpinSystem
    sampler: Sampler
    couplings: InteractionMatrixGenerator
    accumulator: StatisticsAccumulator

    @classmethod
    def allocate(cls, sim_cfg: SimulationConfig, rng: RandomSource) -> "SimulationState":
        N, T = int(sim_cfg.n_spins), int(sim_cfg.tdim)
        what, shape = "spin configuration", (N,)
        try:
            system = SpinSystem(N, rng)
            what, shape = "spin trajectory", (N, T)
            sampler = Sampler(system, T)
            what, shape = "interaction matrix", (N, N)
            couplings = InteractionMatrixGenerator(N)
            what, shape = "covariance accumulators and workspaces", (N, max(N, T))
            accumulator = StatisticsAccumulator(N, T)
        except MemoryError as e:
            raise ResourceExhaustion(what, shape, cause=e)
        return cls(system=system, sampler=sampler, couplings=couplings, accumulator=accumulator)

    def reset_for_cell(self) -> None:
        self.system.reset(1)
        self.accumulator.reset()


@dataclass
class ScanReport:
    computed: List[Tuple[int, int]] = field(default_factory=list)
    skipped: List[Tuple[int, int]] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def n_computed(self) -> int:
        return len(self.computed)

    @property
    def n_skipped(self) -> int:
        return len(self.skipped)


class ScanController:
    """
    对 (mu, sd) 网格执行完整扫描。

    参数
    ----
    config : Config
        运行参数；构造时深拷贝，运行期间不可修改。
    store : FileResultStore
        结果存储；条目存在即视为已认领。
    rng : RandomSource, optional
        随机数来源；默认按 config.simulation 的种子策略创建 NumpyRandomSource。
    """

    def __init__(self, config: Config, store: FileResultStore,
                 rng: Optional[RandomSource] = None,
                 logger: Optional[logging.Logger] = None,
                 worker_index: int = 0):
        self.config = copy.deepcopy(config)
        self.store = store
        self.worker_index = int(worker_index)
        self.rng = rng if rng is not None else make_random_source(self.config.simulation, self.worker_index)
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.grid = ParameterGrid.from_config(self.config.grid)
        self.state = SimulationState.allocate(self.config.simulation, self.rng)
        self.monitor = PerformanceMonitor(self.logger)

    # ------------------------------------------------------------------
    def run_cell(self, cell: GridCell) -> GridCellResult:
        """计算单个格点的 7 元组结果（不读写存储）。"""
        sim = self.config.simulation
        st = self.state
        st.reset_for_cell()
        try:
            for _ in range(sim.conf_num):
                J = st.couplings.generate(cell.mu, cell.sd, self.rng)
                st.sampler.thermalize(J, sim.thermal)
                traj = st.sampler.sample(J)
                st.accumulator.accumulate(traj, J)
        except MemoryError as e:
            if isinstance(e, ResourceExhaustion):
                raise
            raise ResourceExhaustion(f"per-configuration workspace for cell ({cell.a}, {cell.b})",
                                     (sim.n_spins, sim.tdim), cause=e)
        return st.accumulator.finalize(cell.mu, cell.sd)

    def run(self) -> ScanReport:
        sim = self.config.simulation
        report = ScanReport()
        t0 = time.time()

        summary = self.grid.summary()
        log_run_header(
            self.logger,
            {"simulation": self.config.to_dict()["simulation"], "store": str(self.store.root),
             "rng": self.rng.describe()},
            grid_summary=f"{summary['n_mu']} x {summary['n_sd']} (mu x sd), {summary['n_cells']} cells",
        )
        self.logger.info("N=%d tdim=%d conf_num=%d thermal=%d",
                         sim.n_spins, sim.tdim, sim.conf_num, sim.thermal)

        progress = ProgressLogger(self.grid.n_cells, desc="scan", logger=self.logger,
                                  log_every_n=self.config.logging.progress_every)
        self.monitor.start_timer("scan")
        for cell in self.grid.cells():
            key = (cell.a, cell.b)
            if self.store.exists(cell.a, cell.b):
                report.skipped.append(key)
                self.monitor.count("skipped")
                progress.update()
                continue
            if not self.store.claim(cell.a, cell.b):
                self.logger.debug("cell (%d, %d) claimed by another process", cell.a, cell.b)
                report.skipped.append(key)
                self.monitor.count("skipped")
                progress.update()
                continue

            self.logger.info("%s mu=%f sd=%f", self.store.path_for(cell.a, cell.b).name, cell.mu, cell.sd)
            self.monitor.start_timer("cell")
            result = self.run_cell(cell)
            self.store.write(cell.a, cell.b, result)
            dt = self.monitor.stop_timer("cell")
            self.logger.debug("cell (%d, %d) done in %.2fs: %s", cell.a, cell.b, dt, result.as_dict())
            report.computed.append(key)
            self.monitor.count("computed")
            progress.update()

        self.monitor.stop_timer("scan")
        report.elapsed = time.time() - t0
        progress.finish()
        self.logger.info("computed %d cells, skipped %d, acceptance rate %.4f",
                         report.n_computed, report.n_skipped, self.state.system.acceptance_rate)
        self.logger.info("elapsed: %.2f s", report.elapsed)
        return report
