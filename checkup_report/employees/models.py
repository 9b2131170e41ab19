"""员工与附件数据模型。

员工表的一行、数据目录里与员工匹配的附件，以及最终放进报告的图片页。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

IMAGE = "image"
PDF = "pdf"
OTHER = "other"


@dataclass
class Employee:
    """员工表中的一名员工。"""

    name: str
    id_number: str = ""     # 证件号（身份证号）
    employee_no: str = ""   # 工号
    gender: str = ""
    age: str = ""
    exam_date: str = ""     # 体检日期，原样保留表格里的文本
    raw: dict = field(default_factory=dict)


@dataclass
class Attachment:
    """数据目录中的一个附件文件。"""

    file_name: str
    full_path: Path
    label: str              # 文件名去掉姓名后的部分，如 "血常规"
    kind: str               # image | pdf | other
    category: str = ""      # 化验 / 体成分 / 心电图，无法识别时为空
    ext: str = ""


@dataclass
class AssetBundle:
    employee: Employee
    summary_file: Optional[Path] = None
    summary_text: str = ""
    attachments: list[Attachment] = field(default_factory=list)

    @property
    def has_summary(self) -> bool:
        return bool(self.summary_text.strip())

    @property
    def has_attachments(self) -> bool:
        return bool(self.attachments)


@dataclass
class ImagePage:
    """报告中的一张图片页：图片文件，或 PDF 栅格化后的一页。"""

    label: str
    category: str = ""
    data: Optional[bytes] = None
    path: Optional[Path] = None

    @property
    def source(self):
        """交给注入器的图片载荷。"""
        return self.data if self.data is not None else self.path
