import os


def is_admin() -> bool:
    """
    检测当前进程是否以 root 身份运行。

    Returns:
        bool: 有效用户 ID 为 0 时返回 True
    """
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


def can_write(path: str) -> bool:
    """
    检测当前用户能否在 path 下创建文件。

    path 不存在时向上查找第一个存在的父目录。

    Args:
        path: 目标目录

    Returns:
        bool: 可写返回 True
    """
    current = os.path.abspath(path)
    while not os.path.exists(current):
        parent = os.path.dirname(current)
        if parent == current:
            return False
        current = parent
    return os.access(current, os.W_OK | os.X_OK)
