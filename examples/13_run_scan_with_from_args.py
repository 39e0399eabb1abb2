# examples/config/run_scan_with_from_args.py
"""
使用 from_args() + 命令行 --preset / --set / ENV 来驱动网格扫描，完成后导出 HDF5 表与相图。

    python examples/13_run_scan_with_from_args.py --preset quick --set store.output_dir=runs/quick
    SKGLASS__simulation__seed_policy=spawn python examples/13_run_scan_with_from_args.py --preset tiny
"""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
for p in (ROOT, ROOT / "src"):
    s = str(p)
    if s not in sys.path:
        sys.path.insert(0, s)

import matplotlib
matplotlib.use("Agg")

from sk_spinglass.data.grid_io import collect_grid, save_grid_hdf5
from sk_spinglass.data.result_store import FileResultStore
from sk_spinglass.simulation.scan import ScanController
from sk_spinglass.utils.config import from_args, validate_config
from sk_spinglass.utils.logger import setup_logger
from sk_spinglass.visualization.plots import plot_all_observables


def main():
    cfg = from_args()  # 会解析 --preset / --config / --set / ENV 等
    ok, issues = validate_config(cfg)
    for w in issues:
        print("[config warning]", w)

    log = setup_logger("sk_spinglass", level=cfg.logging.level,
                       log_file=cfg.logging.log_file, use_color=cfg.logging.use_color)
    store = FileResultStore(cfg.store.output_dir, pattern=cfg.store.pattern,
                            float_format=cfg.store.float_format)
    controller = ScanController(cfg, store, logger=log)
    controller.run()

    out_dir = Path(cfg.store.output_dir)
    table = collect_grid(store, controller.grid)
    save_grid_hdf5(table, out_dir / "grid.h5",
                   attrs={f"simulation.{k}": v for k, v in cfg.to_dict()["simulation"].items()})
    paths = plot_all_observables(table, save_dir=out_dir / "figures", logger=log)

    print("Run finished. Output dir:", out_dir)
    for name, p in paths.items():
        print(f"  {name}: {p}")


if __name__ == "__main__":
    main()
