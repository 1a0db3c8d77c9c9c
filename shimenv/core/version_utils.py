"""
版本工具模块。

提供版本名解析和排序等工具函数。
"""

import re
from typing import Iterable, List, Tuple

_CHUNK_PATTERN = re.compile(r'(\d+)')


def _parse_version(version_str: str) -> Tuple[Tuple[int, int, str], ...]:
    """
    解析版本字符串为可比较的元组。

    数字段按数值比较，其余字符按字典序比较，所以 "10" 排在 "9" 之后，
    "1.10.0" 排在 "1.9.3" 之后。数字段总是排在同位置的文字段之前。

    参数:
        version_str: 版本字符串

    返回:
        可比较的元组
    """
    key = []
    for chunk in _CHUNK_PATTERN.split(version_str):
        if not chunk:
            continue
        if chunk.isdecimal():
            key.append((0, int(chunk), ""))
        else:
            key.append((1, 0, chunk))
    return tuple(key)


def version_sort_key(version_str: str) -> Tuple[Tuple[Tuple[int, int, str], ...], str]:
    """排序键：先按解析结果，再按原字符串保证全序。"""
    return _parse_version(version_str), version_str


def sort_versions(versions: Iterable[str]) -> List[str]:
    """
    按版本号升序排列版本名列表。

    参数:
        versions: 版本名列表

    返回:
        排序后的版本名列表
    """
    return sorted(versions, key=version_sort_key)
