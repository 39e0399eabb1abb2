# examples/quick_start.py
"""
Quick start: 最小的 SK 网格扫描示例

- 使用 'tiny' 预设（N=8，2x2 网格），几秒内跑完
- 结果写入 runs/quick_start/file_A_B.txt，再汇总打印五个观测量
"""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
for p in (ROOT, ROOT / "src"):
    s = str(p)
    if s not in sys.path:
        sys.path.insert(0, s)

from sk_spinglass.data.grid_io import collect_grid
from sk_spinglass.data.result_store import FileResultStore
from sk_spinglass.simulation.scan import ScanController
from sk_spinglass.utils.config import get_preset_config
from sk_spinglass.utils.logger import setup_logger


def main():
    cfg = get_preset_config("tiny")
    cfg.store.output_dir = str(ROOT / "runs" / "quick_start")
    log = setup_logger("sk_spinglass", level="INFO")

    store = FileResultStore(cfg.store.output_dir, pattern=cfg.store.pattern,
                            float_format=cfg.store.float_format)
    controller = ScanController(cfg, store, logger=log)
    report = controller.run()
    print(f"computed {report.n_computed} cells, skipped {report.n_skipped}")

    # 再跑一次：所有格点已存在，应全部跳过
    again = ScanController(cfg, store, logger=log).run()
    print(f"second pass: computed {again.n_computed}, skipped {again.n_skipped}")

    table = collect_grid(store, controller.grid)
    print("\nPer-cell observables:")
    for a, mu in enumerate(table["mu"]):
        for b, sd in enumerate(table["sd"]):
            print(
                f"mu={mu:.3f} sd={sd:.3f}: "
                f"Xsg={table['Xsg'][a, b]:.4f} Xuni={table['Xuni'][a, b]:.4f} "
                f"q={table['q'][a, b]:.4f} m={table['m'][a, b]:.4f} c={table['c'][a, b]:.4f}"
            )


if __name__ == "__main__":
    main()
