"""PDF 栅格化：ABC 接口 + PyMuPDF / pdftoppm 两个实现。

PyMuPDF 渲染失败或得到 0 页时，退回 pdftoppm 子进程。
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import fitz

from .. import config
from .models import Attachment, ImagePage

logger = logging.getLogger(__name__)


def page_label(label: str, page_number: int) -> str:
    return f"{label} 第{page_number}页"


class PdfRasterizer(ABC):
    """PDF → 每页一张 PNG 的抽象接口。"""

    @abstractmethod
    def render(self, pdf_path: Path, label: str, category: str = "") -> list[ImagePage]:
        """渲染全部页面。失败时抛异常。"""


class PyMuPdfRasterizer(PdfRasterizer):
    """PyMuPDF (fitz) 内存渲染。"""

    def __init__(self, scale: float = config.PDF_RENDER_SCALE):
        self.scale = scale

    def render(self, pdf_path: Path, label: str, category: str = "") -> list[ImagePage]:
        pages = []
        with fitz.open(str(pdf_path)) as doc:
            mat = fitz.Matrix(self.scale, self.scale)
            for index, page in enumerate(doc, start=1):
                pix = page.get_pixmap(matrix=mat, alpha=False)
                pages.append(ImagePage(
                    label=page_label(label, index),
                    category=category,
                    data=pix.tobytes("png"),
                ))
        return pages


class PdftoppmRasterizer(PdfRasterizer):
    """poppler 的 pdftoppm 子进程，输出到临时目录后读回。"""

    def __init__(self, dpi: int = config.PDF_RENDER_DPI, binary: str = "pdftoppm",
                 timeout: float = config.CONVERT_TIMEOUT_SEC):
        self.dpi = dpi
        self.binary = binary
        self.timeout = timeout

    def render(self, pdf_path: Path, label: str, category: str = "") -> list[ImagePage]:
        exe = shutil.which(self.binary)
        if exe is None:
            raise FileNotFoundError(f"未找到 {self.binary}")

        with tempfile.TemporaryDirectory(prefix="checkup_pdf_") as td:
            prefix = Path(td) / "page"
            proc = subprocess.run(
                [exe, "-png", "-r", str(self.dpi), str(pdf_path), str(prefix)],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
            if proc.returncode != 0:
                raise RuntimeError(f"pdftoppm 失败 (exit {proc.returncode}): {proc.stderr.strip()}")

            # page-1.png / page-01.png …，按页码排序
            files = sorted(Path(td).glob("page-*.png"), key=lambda p: int(p.stem.rsplit("-", 1)[1]))
            return [
                ImagePage(label=page_label(label, i), category=category, data=f.read_bytes())
                for i, f in enumerate(files, start=1)
            ]


_DEFAULT_BACKENDS: Optional[list[PdfRasterizer]] = None


def default_backends() -> list[PdfRasterizer]:
    global _DEFAULT_BACKENDS
    if _DEFAULT_BACKENDS is None:
        _DEFAULT_BACKENDS = [PyMuPdfRasterizer(), PdftoppmRasterizer()]
    return _DEFAULT_BACKENDS


def pdf_to_images(
    pdf_path: Path,
    label: str,
    category: str = "",
    backends: Optional[list[PdfRasterizer]] = None,
) -> list[ImagePage]:
    """依次尝试各后端，第一个返回非空结果的为准。全部失败时警告并返回空列表。"""
    for backend in backends or default_backends():
        try:
            pages = backend.render(Path(pdf_path), label, category)
        except (RuntimeError, OSError, ValueError, subprocess.TimeoutExpired) as e:
            logger.warning(f"{type(backend).__name__} 转换失败（{Path(pdf_path).name}）：{e}")
            continue
        if pages:
            return pages
        logger.warning(f"{type(backend).__name__} 未得到任何页面：{Path(pdf_path).name}")
    return []


def attachment_pages(attachment: Attachment, backends: Optional[list[PdfRasterizer]] = None) -> list[ImagePage]:
    return pdf_to_images(attachment.full_path, attachment.label, attachment.category, backends)
