"""测试共用的夹具：用 python-pptx / Pillow 现场生成模板与图片。"""

import io
import zipfile

import pytest
from docx import Document
from PIL import Image as PILImage
from pptx import Presentation
from pptx.util import Emu, Inches

from checkup_report import _resources
from checkup_report.pptx_injector.package import OoxmlPackage

SLIDE_CX = 12192000
SLIDE_CY = 6858000


def png_bytes(width: int = 40, height: int = 20, color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    PILImage.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def build_deck(slides: list[dict]) -> bytes:
    """按描述生成 PPTX 字节。

    每个元素: {"texts": [...], "picture": bool, "notes": str, "link": url}
    第 i 个元素对应 ppt/slides/slide{i+1}.xml。
    """
    prs = Presentation()
    prs.slide_width = Emu(SLIDE_CX)
    prs.slide_height = Emu(SLIDE_CY)
    blank = prs.slide_layouts[6]
    for spec in slides:
        slide = prs.slides.add_slide(blank)
        top = Inches(0.4)
        for text in spec.get("texts", []):
            box = slide.shapes.add_textbox(Inches(0.5), top, Inches(8), Inches(0.6))
            box.text_frame.text = text
            top += Inches(0.7)
        if spec.get("link"):
            box = slide.shapes.add_textbox(Inches(0.5), top, Inches(8), Inches(0.6))
            run = box.text_frame.paragraphs[0].add_run()
            run.text = "查看详情"
            run.hyperlink.address = spec["link"]
        if spec.get("picture"):
            slide.shapes.add_picture(io.BytesIO(png_bytes()), Inches(1), Inches(2), Inches(6), Inches(4))
        if spec.get("notes"):
            slide.notes_slide.notes_text_frame.text = spec["notes"]
    buf = io.BytesIO()
    prs.save(buf)
    return buf.getvalue()


def corrupt_docx(path) -> None:
    """写一个能打开压缩包、但 document.xml 不是合法 XML 的 docx。"""
    buf = io.BytesIO()
    Document().save(buf)
    with zipfile.ZipFile(io.BytesIO(buf.getvalue())) as src, zipfile.ZipFile(path, "w") as dst:
        for item in src.infolist():
            data = src.read(item.filename)
            if item.filename == "word/document.xml":
                data = b"<w:document broken"
            dst.writestr(item, data)


def drop_slides(data: bytes, numbers: list[int]) -> bytes:
    """从模板中删掉指定页的 part 与关系文件。"""
    pkg = OoxmlPackage.open(data)
    for n in numbers:
        pkg.delete(f"ppt/slides/slide{n}.xml")
        pkg.delete(f"ppt/slides/_rels/slide{n}.xml.rels")
    return pkg.serialize()


def report_template() -> bytes:
    """体检报告模板：1 封面、2 化验图片页、7 结尾，其余页不存在。"""
    slides = [
        {"texts": ["2025 员工体检报告", "姓名：{{姓名}}", "证件号：{{证件号}}", "报告日期：{{日期}}"]},
        {"texts": ["{{影像标题}}", "{{姓名}}（{{工号}}）", "{{影像}}"], "picture": True},
        {"texts": ["占位三"]},
        {"texts": ["占位四"]},
        {"texts": ["占位五"]},
        {"texts": ["占位六"]},
        {"texts": ["感谢您的阅读", "{{姓名}}，祝您健康"]},
    ]
    return drop_slides(build_deck(slides), [3, 4, 5, 6])


@pytest.fixture
def empty_deck() -> bytes:
    return build_deck([])


@pytest.fixture(autouse=True)
def _reset_resources(monkeypatch):
    for key in ("CHECKUP_ROOT_DIR", "CHECKUP_DATA_DIR", "CHECKUP_OUTPUT_DIR"):
        monkeypatch.delenv(key, raising=False)
    _resources.reset()
    yield
    _resources.reset()
