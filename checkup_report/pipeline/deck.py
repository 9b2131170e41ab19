"""每位员工报告的空白底稿（python-pptx 默认模板）。"""

from __future__ import annotations

import io

from pptx import Presentation
from pptx.util import Emu

from .. import config
from ..employees.models import Employee
from ..pptx_injector.package import PRESENTATION_PART, OoxmlPackage
from ..pptx_replacer.images import slide_size


def build_base_deck(template: OoxmlPackage, employee: Employee) -> bytes:
    """不含幻灯片的空演示文稿，页面尺寸与模板一致。"""
    cx, cy = slide_size(template.get_text(PRESENTATION_PART))
    prs = Presentation()
    prs.slide_width = Emu(cx)
    prs.slide_height = Emu(cy)

    props = prs.core_properties
    props.author = config.REPORT_AUTHOR
    props.title = f"{config.REPORT_TITLE} - {employee.name}"
    props.subject = config.REPORT_SUBJECT

    buf = io.BytesIO()
    prs.save(buf)
    return buf.getvalue()
