"""
文件工具模块。

提供原子写入功能：先写入同目录下的临时文件，再通过 os.replace 替换目标文件，
并发读取方永远不会看到写了一半的文件。
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

PathLike = Union[str, Path]


def atomic_write_text(file_path: PathLike, content: str, mode: Optional[int] = None) -> None:
    """
    原子写入文本文件。

    参数:
        file_path: 目标文件路径
        content: 文件内容
        mode: 可选的文件权限（如 0o755）
    """
    file_path = Path(file_path)
    fd, temp_name = tempfile.mkstemp(
        dir=str(file_path.parent),
        prefix=f".{file_path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        if mode is not None:
            os.chmod(temp_name, mode)
        os.replace(temp_name, file_path)
    except BaseException:
        try:
            os.unlink(temp_name)
        except FileNotFoundError:
            pass
        raise


def atomic_save_json(file_path: PathLike, data: Any, indent: int = 2) -> None:
    """
    原子保存 JSON 数据到文件，防止写入中断导致文件损坏。

    参数:
        file_path: 目标文件路径
        data: 要保存的数据
        indent: JSON 缩进
    """
    atomic_write_text(file_path, json.dumps(data, indent=indent, ensure_ascii=False))


def is_executable_file(path: PathLike) -> bool:
    """判断路径是否为可执行的普通文件（跟随符号链接）。"""
    return os.path.isfile(path) and os.access(path, os.X_OK)
