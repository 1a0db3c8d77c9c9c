"""
支持 `python -m shimenv` 调用（垫片通过此入口执行 exec 命令）。
"""

import sys

from shimenv.main import main

sys.exit(main())
