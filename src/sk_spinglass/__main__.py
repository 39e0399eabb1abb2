# -*- coding: utf-8 -*-
"""python -m sk_spinglass 等价于 sk-scan。"""

import multiprocessing as mp

from .simulation.batch_runner import main

if __name__ == "__main__":
    mp.freeze_support()
    raise SystemExit(main())
