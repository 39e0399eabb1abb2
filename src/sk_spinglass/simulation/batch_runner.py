# -*- coding: utf-8 -*-
"""
扫描任务启动器（命令行入口 ``sk-scan``）

实现功能：
    - 六种运行模式：
        • scan           : 本进程内执行完整扫描（默认；无参数时使用参考配置）
        • run_workers    : spawn 启动 N 个子进程，各自对同一结果目录执行完整扫描
        • status         : 统计 pending / claimed / done 格点数
        • release_claims : 删除空标记（崩溃后残留的认领），使其可被重新计算
        • collect        : 汇总结果目录为 HDF5 / NPZ 表
        • plot           : 由结果目录（或已导出的表）绘制五个观测量相图
    - 配置合并：--preset / --config / --env-prefix / --set / --root
    - 致命错误（ResourceExhaustion / StoreUnavailable）以 CRITICAL 记录，退出码 1

Examples:
    $ sk-scan
    $ sk-scan --preset quick --set store.output_dir=run1
    $ python -m sk_spinglass.simulation.batch_runner --mode run_workers --nworkers 8 --set simulation.seed_policy=spawn
    $ sk-scan --mode collect --out grid.h5
"""

from __future__ import annotations

import argparse
import logging
import multiprocessing as mp
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.grid import ParameterGrid
from ..data.grid_io import collect_grid, load_grid_hdf5, load_grid_npz, save_grid_hdf5, save_grid_npz, summarize_table
from ..data.result_store import FileResultStore
from ..errors import SimulationError
from ..utils.config import Config, build_arg_parser, config_from_namespace
from ..utils.logger import setup_logger
from .scan import ScanController

MODES = ("scan", "run_workers", "status", "release_claims", "collect", "plot")


def open_store(cfg: Config, create: bool = True) -> FileResultStore:
    return FileResultStore(cfg.store.output_dir, pattern=cfg.store.pattern,
                           float_format=cfg.store.float_format, create=create)


def _worker_log_file(log_file: Optional[str], worker_index: int) -> Optional[str]:
    if not log_file:
        return None
    p = Path(log_file)
    return str(p.with_name(f"{p.stem}.worker{worker_index}{p.suffix}"))


# ----------------------------- 子进程入口 -----------------------------
def run_worker_process(cfg_dict: Dict[str, Any], worker_index: int) -> None:
    """spawn 子进程：重建配置与 logger，对共享目录执行完整扫描。"""
    cfg = Config.from_dict(cfg_dict)
    log = setup_logger(
        name=f"sk_spinglass.worker{worker_index}",
        level=cfg.logging.level,
        log_file=_worker_log_file(cfg.logging.log_file, worker_index),
        use_color=cfg.logging.use_color,
    )
    try:
        store = open_store(cfg)
        report = ScanController(cfg, store, logger=log, worker_index=worker_index).run()
    except SimulationError as e:
        log.critical("worker %d aborted: %s", worker_index, e)
        raise SystemExit(1)
    log.info("worker %d finished: computed=%d skipped=%d", worker_index, report.n_computed, report.n_skipped)


def run_workers(cfg: Config, nworkers: int, log: logging.Logger, timeout: Optional[float] = None) -> int:
    """
    启动 nworkers 个子进程（统一 spawn 上下文），返回失败的子进程个数。
    """
    ctx = mp.get_context("spawn")
    procs: List[mp.Process] = []
    cfg_dict = cfg.to_dict()
    log.info("launching %d workers on %s", nworkers, cfg.store.output_dir)
    try:
        for i in range(int(nworkers)):
            p = ctx.Process(target=run_worker_process, args=(cfg_dict, i), name=f"sk-scan-worker{i}")
            p.start()
            procs.append(p)
        for p in procs:
            p.join(timeout)
    except KeyboardInterrupt:
        log.warning("KeyboardInterrupt received; terminating workers...")
        for p in procs:
            p.terminate()
        for p in procs:
            p.join(1.0)
        raise
    failed = [p.name for p in procs if p.exitcode not in (0, None)]
    if failed:
        log.error("workers exited with errors: %s", ", ".join(failed))
    else:
        log.info("all %d workers finished", len(procs))
    return len(failed)


# ----------------------------- 各模式 -----------------------------
def _mode_status(cfg: Config, log: logging.Logger) -> Dict[str, int]:
    grid = ParameterGrid.from_config(cfg.grid)
    counts = open_store(cfg, create=False).status(grid.shape)
    log.info("store %s: done=%d claimed=%d pending=%d total=%d", cfg.store.output_dir,
             counts["done"], counts["claimed"], counts["pending"], counts["total"])
    return counts


def _mode_collect(cfg: Config, out: Optional[str], log: logging.Logger) -> Path:
    grid = ParameterGrid.from_config(cfg.grid)
    table = collect_grid(open_store(cfg, create=False), grid)
    out_path = Path(out) if out else Path(cfg.store.output_dir) / "grid.h5"
    attrs = {f"simulation.{k}": v for k, v in cfg.to_dict()["simulation"].items()}
    if out_path.suffix == ".npz":
        saved = save_grid_npz(table, out_path)
    else:
        saved = save_grid_hdf5(table, out_path, attrs=attrs)
    for name, s in summarize_table(table).items():
        log.info("  %-5s n=%d min=%g max=%g", name, s["count"], s["min"], s["max"])
    return saved


def _mode_plot(cfg: Config, table_path: Optional[str], out: Optional[str], log: logging.Logger) -> Dict[str, Any]:
    # matplotlib 只在出图时导入
    import matplotlib
    matplotlib.use("Agg")
    from ..visualization.plots import plot_all_observables

    if table_path:
        table = load_grid_npz(table_path) if table_path.endswith(".npz") else load_grid_hdf5(table_path)
    else:
        table = collect_grid(open_store(cfg, create=False), ParameterGrid.from_config(cfg.grid))
    save_dir = out or str(Path(cfg.store.output_dir) / "figures")
    return plot_all_observables(table, save_dir=save_dir, logger=log)


# ----------------------------- CLI -----------------------------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sk-scan",
        description="SK spin-glass (mu, sd) grid scan with file-per-cell resumable claiming.")
    parser.add_argument("--mode", "-m", type=str, choices=MODES, default="scan")
    parser.add_argument("--nworkers", type=int, default=4, help="number of processes for run_workers")
    parser.add_argument("--out", "-o", type=str, default=None, help="output file (collect) or directory (plot)")
    parser.add_argument("--table", type=str, default=None, help="exported .h5/.npz table for plot mode")
    build_arg_parser(parser)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    log = logging.getLogger("sk_spinglass")
    try:
        cfg = config_from_namespace(args)
    except (ValueError, FileNotFoundError) as e:
        log = setup_logger("sk_spinglass")
        log.critical("invalid configuration: %s", e)
        raise SystemExit(1)

    log = setup_logger("sk_spinglass", level=cfg.logging.level,
                       log_file=cfg.logging.log_file, use_color=cfg.logging.use_color)

    try:
        if args.mode == "scan":
            report = ScanController(cfg, open_store(cfg), logger=log).run()
            log.info("scan finished: computed=%d skipped=%d in %.2f s",
                     report.n_computed, report.n_skipped, report.elapsed)
        elif args.mode == "run_workers":
            if run_workers(cfg, args.nworkers, log):
                raise SystemExit(1)
        elif args.mode == "status":
            _mode_status(cfg, log)
        elif args.mode == "release_claims":
            n = open_store(cfg, create=False).release_claims()
            log.info("released %d stale claims", n)
        elif args.mode == "collect":
            saved = _mode_collect(cfg, args.out, log)
            log.info("table written to %s", saved)
        elif args.mode == "plot":
            _mode_plot(cfg, args.table, args.out, log)
    except SimulationError as e:
        log.critical("fatal: %s", e)
        if e.__cause__ is not None:
            log.critical("caused by: %r", e.__cause__)
        raise SystemExit(1)
    return 0


if __name__ == "__main__":
    # Windows/macOS 下直接作为脚本执行时的主模块保护
    mp.freeze_support()
    main()
