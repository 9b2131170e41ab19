"""员工表读取 (openpyxl)。"""

from __future__ import annotations

import logging
from datetime import date, datetime
from pathlib import Path

from openpyxl import load_workbook

from .models import Employee

logger = logging.getLogger(__name__)

# 字段 → 可接受的表头
HEADER_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("姓名", "name"),
    "id_number": ("证件号", "身份证号", "身份证", "证件号码"),
    "employee_no": ("工号", "员工工号", "编号"),
    "gender": ("性别",),
    "age": ("年龄",),
    "exam_date": ("体检日期", "日期"),
}


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _pick(record: dict, field_name: str) -> str:
    for header in HEADER_ALIASES[field_name]:
        value = _text(record.get(header))
        if value:
            return value
    return ""


def load_employees(path: Path) -> list[Employee]:
    """读取第一个工作表。第 1 行为表头，姓名为空的行跳过。"""
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"未找到员工表：{path}")

    wb = load_workbook(path, read_only=True, data_only=True)
    try:
        ws = wb.worksheets[0] if wb.worksheets else None
        if ws is None:
            return []

        rows = ws.iter_rows(values_only=True)
        header_row = next(rows, None)
        if header_row is None:
            return []
        headers = [_text(h) for h in header_row]

        employees = []
        for row in rows:
            record = {h: v for h, v in zip(headers, row) if h}
            name = _pick(record, "name")
            if not name:
                continue
            employees.append(Employee(
                name=name,
                id_number=_pick(record, "id_number").upper(),
                employee_no=_pick(record, "employee_no"),
                gender=_pick(record, "gender"),
                age=_pick(record, "age"),
                exam_date=_pick(record, "exam_date"),
                raw={k: _text(v) for k, v in record.items()},
            ))
    finally:
        wb.close()

    logger.info(f"员工表读取完成：{path.name}，{len(employees)} 人")
    return employees
