"""按文件名把报告 PDF 发给对应员工。

文件名约定：体检报告_<姓名>_<证件号>.pdf 或 体检报告_<姓名>_<证件号>_<n>.pdf。
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

import httpx

from .client import MessengerClient
from .models import DispatchRecord, DispatchSummary

logger = logging.getLogger(__name__)

REPORT_FILENAME_RE = re.compile(r"^体检报告_([^_]+)_([\dXx]+)(?:_\d+)?\.pdf$")


def parse_report_filename(file_name: str) -> Optional[tuple[str, str]]:
    """(姓名, 证件号)；不符合约定时返回 None。"""
    m = REPORT_FILENAME_RE.match(file_name)
    if not m:
        return None
    return m.group(1), m.group(2).upper()


def dispatch_file(client: MessengerClient, pdf_path: Path) -> DispatchRecord:
    """单个文件：解析 → 查询账号 → 发送。任何失败都记在结果里，不抛出。"""
    pdf_path = Path(pdf_path)
    record = DispatchRecord(fileName=pdf_path.name)

    parsed = parse_report_filename(pdf_path.name)
    if parsed is None:
        record.reason = "文件名格式不符合要求"
        logger.warning(f"文件名格式不符合要求：{pdf_path.name}")
        return record
    record.name, record.id_number = parsed

    try:
        record.account_id = client.lookup_id(record.id_number)
        client.deliver_file(record.account_id, pdf_path.read_bytes(), pdf_path.name)
    except (LookupError, RuntimeError, ValueError, OSError, httpx.HTTPError) as e:
        record.reason = str(e)
        logger.error(f"处理失败 ({pdf_path.name}): {e}")
        return record

    record.delivered = True
    logger.info(f"文件发送成功：{pdf_path.name} → {record.account_id}")
    return record


def dispatch_directory(client: MessengerClient, directory: Path) -> DispatchSummary:
    """目录下所有 PDF 逐个发送。目录不存在或为空时返回空结果。"""
    directory = Path(directory)
    summary = DispatchSummary(directory=directory)
    if not directory.is_dir():
        logger.error(f"发送目录不存在：{directory}")
        return summary

    pdfs = sorted(p for p in directory.iterdir() if p.is_file() and p.suffix.lower() == ".pdf")
    if not pdfs:
        logger.info(f"{directory} 内没有PDF文件")
        return summary

    logger.info(f"找到 {len(pdfs)} 个PDF文件，开始发送")
    for pdf in pdfs:
        summary.records.append(dispatch_file(client, pdf))
    return summary
