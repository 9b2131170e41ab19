"""员工附件收集：按文件名匹配员工、分类附件、读取 AI 总结 (python-docx)。

数据目录中的文件命名约定：<姓名>[-_]<标签>.<扩展名>，例如 李雷-血常规.jpg、李雷_体成分.pdf。
AI 总结是文件名含“总结”的 .docx。
"""

from __future__ import annotations

import logging
import re
import zipfile
from pathlib import Path
from typing import Optional

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from lxml import etree

from .models import IMAGE, OTHER, PDF, AssetBundle, Attachment, Employee

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".gif", ".bmp"})
PDF_EXTENSIONS = frozenset({".pdf"})
SUMMARY_KEYWORD = "总结"
DEFAULT_LABEL = "附件"

# 分类 → 标签关键词（按顺序匹配，先命中先得）
CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "体成分": ("体成分", "人体成分", "inbody"),
    "心电图": ("心电", "ecg"),
    "化验": ("化验", "检验", "血", "尿", "生化"),
}


def normalize_name(value: str) -> str:
    """去扩展名，截掉第一个 - 或 _ 之后的内容，去空白并转小写。"""
    if not value:
        return ""
    text = re.sub(r"\.[^.]+$", "", str(value))
    text = re.sub(r"[-_].*$", "", text)
    return re.sub(r"\s+", "", text).lower()


def attachment_label(file_name: str) -> str:
    """李雷-血常规-复查.jpg → 血常规-复查；没有分隔符时为“附件”。"""
    stem = Path(file_name).stem
    parts = re.split(r"[-_]", stem)
    return "-".join(p for p in parts[1:] if p) or DEFAULT_LABEL


def classify(label: str) -> str:
    lowered = label.lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(k in lowered for k in keywords):
            return category
    return ""


def attachment_kind(ext: str) -> str:
    ext = ext.lower()
    if ext in IMAGE_EXTENSIONS:
        return IMAGE
    if ext in PDF_EXTENSIONS:
        return PDF
    return OTHER


def list_data_files(data_dir: Path) -> list[str]:
    """数据目录下的文件名（排序）。目录不存在时警告并返回空列表。"""
    data_dir = Path(data_dir)
    if not data_dir.is_dir():
        logger.warning(f"数据目录不存在：{data_dir}")
        return []
    return sorted(p.name for p in data_dir.iterdir() if p.is_file() and not p.name.startswith("~$"))


def extract_text(path: Path) -> str:
    """读取 docx 正文（含表格），去掉空行。读不了时警告并返回空串。"""
    try:
        doc = Document(str(path))
    except (PackageNotFoundError, zipfile.BadZipFile, etree.XMLSyntaxError, KeyError, ValueError) as e:
        logger.warning(f"无法读取AI总结：{path}，原因：{e}")
        return ""

    lines = [p.text.strip() for p in doc.paragraphs]
    for table in doc.tables:
        for row in table.rows:
            cells = [c.text.strip() for c in row.cells]
            lines.append(" ".join(c for c in cells if c))
    return "\n".join(line for line in lines if line)


def collect_assets(employee: Employee, files: list[str], data_dir: Path) -> AssetBundle:
    """挑出属于该员工的文件：一份总结 + 其余附件。"""
    data_dir = Path(data_dir)
    target = normalize_name(employee.name)
    matched = [f for f in files if normalize_name(f) == target]

    summary_file: Optional[str] = next(
        (f for f in matched if SUMMARY_KEYWORD in f and Path(f).suffix.lower() == ".docx"), None
    )
    summary_text = extract_text(data_dir / summary_file) if summary_file else ""

    attachments = []
    for f in matched:
        if f == summary_file:
            continue
        ext = Path(f).suffix.lower()
        label = attachment_label(f)
        attachments.append(Attachment(
            file_name=f,
            full_path=data_dir / f,
            label=label,
            kind=attachment_kind(ext),
            category=classify(label),
            ext=ext,
        ))

    logger.debug(f"{employee.name}: 匹配 {len(matched)} 个文件，总结={'有' if summary_text else '无'}")
    return AssetBundle(
        employee=employee,
        summary_file=data_dir / summary_file if summary_file else None,
        summary_text=summary_text,
        attachments=attachments,
    )
