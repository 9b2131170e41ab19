"""资源路径管理：根目录/数据目录/输出目录与模板、员工表定位的统一入口。

优先级:
  1. set_*() 显式指定
  2. 环境变量 CHECKUP_ROOT_DIR / CHECKUP_DATA_DIR / CHECKUP_OUTPUT_DIR
  3. 默认值（当前工作目录下的 data/、output/）
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

TEMPLATE_CANDIDATES = ("2025员工体检报告（模板）.pptx", "template.pptx")
EMPLOYEE_SHEET_CANDIDATES = ("员工表.xlsx", "employees.xlsx")
SEND_DIR_NAME = "send_data"

_custom_root_dir: Path | None = None
_custom_data_dir: Path | None = None
_custom_output_dir: Path | None = None


def set_root_dir(path: Path | str) -> None:
    global _custom_root_dir
    _custom_root_dir = Path(path)


def set_data_dir(path: Path | str) -> None:
    global _custom_data_dir
    _custom_data_dir = Path(path)


def set_output_dir(path: Path | str) -> None:
    global _custom_output_dir
    _custom_output_dir = Path(path)


def reset() -> None:
    """清除 set_*() 的设置（测试用）。"""
    global _custom_root_dir, _custom_data_dir, _custom_output_dir
    _custom_root_dir = _custom_data_dir = _custom_output_dir = None


def get_root_dir() -> Path:
    if _custom_root_dir is not None:
        return _custom_root_dir
    env = os.getenv("CHECKUP_ROOT_DIR")
    if env:
        return Path(env)
    return Path.cwd()


def get_data_dir() -> Path:
    """员工附件目录。"""
    if _custom_data_dir is not None:
        return _custom_data_dir
    env = os.getenv("CHECKUP_DATA_DIR")
    if env:
        return Path(env)
    return get_root_dir() / "data"


def get_output_dir() -> Path:
    if _custom_output_dir is not None:
        return _custom_output_dir
    env = os.getenv("CHECKUP_OUTPUT_DIR")
    if env:
        return Path(env)
    return get_root_dir() / "output"


def get_send_dir() -> Path:
    return get_root_dir() / SEND_DIR_NAME


def _find_first(candidates: tuple[str, ...], dirs: list[Path]) -> Optional[Path]:
    for directory in dirs:
        for name in candidates:
            path = directory / name
            if path.is_file():
                return path
    return None


def find_template(explicit: Optional[Path] = None) -> Path:
    """模板 PPTX。依次查找根目录和数据目录下的候选文件名。"""
    if explicit is not None:
        path = Path(explicit)
        if not path.is_file():
            raise FileNotFoundError(f"模板文件不存在：{path}")
        return path
    found = _find_first(TEMPLATE_CANDIDATES, [get_root_dir(), get_data_dir()])
    if found is None:
        raise FileNotFoundError(f"未找到模板文件，期望文件名：{'、'.join(TEMPLATE_CANDIDATES)}")
    return found


def find_employee_sheet(explicit: Optional[Path] = None) -> Path:
    if explicit is not None:
        path = Path(explicit)
        if not path.is_file():
            raise FileNotFoundError(f"员工表不存在：{path}")
        return path
    found = _find_first(EMPLOYEE_SHEET_CANDIDATES, [get_root_dir(), get_data_dir()])
    if found is None:
        raise FileNotFoundError(f"未找到员工表，期望文件名：{'、'.join(EMPLOYEE_SHEET_CANDIDATES)}")
    return found
