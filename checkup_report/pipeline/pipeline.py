"""体检报告生成流水线：ABC 接口 + 实现体。

一位员工 = 一个独立的 RunState：模板页依次注入空白底稿，finalize 后写出 .pptx，
可选地转换为 PDF 并发送。批量执行时员工之间并发，互不影响。
"""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from datetime import date
from pathlib import Path
from typing import Optional

import httpx

from ..converter.soffice import PdfConverter
from ..employees.assets import collect_assets, list_data_files
from ..employees.models import IMAGE, PDF, AssetBundle, Employee, ImagePage
from ..employees.rasterize import PdfRasterizer, attachment_pages
from ..messenger.client import MessengerClient
from ..pptx_injector.engine import SlideRequest, ZipSlideInjectionEngine
from ..pptx_injector.integrity import slide_order
from ..pptx_injector.package import OoxmlPackage
from ..pptx_replacer.replacer import format_cn_date
from .deck import build_base_deck
from .models import (
    FAILED,
    SKIP_REASON_NO_CONTENT,
    SKIPPED,
    SUCCEEDED,
    BatchSummary,
    ReportConfig,
    ReportOutcome,
)

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_RE = re.compile(r'[<>:"/\\|?*]|\s+')


def sanitize_filename(value: str) -> str:
    return _UNSAFE_FILENAME_RE.sub("", value or "")


def build_report_filename(employee: Employee, counter: int = 1, ext: str = ".pptx") -> str:
    """体检报告_<姓名>[_<证件号>][_<n>].pptx，n 从 2 开始。"""
    parts = ["体检报告", sanitize_filename(employee.name) or "未命名"]
    id_number = sanitize_filename(employee.id_number)
    if id_number:
        parts.append(id_number)
    if counter > 1:
        parts.append(str(counter))
    return "_".join(parts) + ext


def assign_report_names(employees: list[Employee]) -> list[str]:
    """批量开始前一次性分配文件名，重名依次加 _2、_3 …"""
    names: list[str] = []
    used: set[str] = set()
    for employee in employees:
        counter = 1
        name = build_report_filename(employee, counter)
        while name.lower() in used:
            counter += 1
            name = build_report_filename(employee, counter)
        used.add(name.lower())
        names.append(name)
    return names


def cover_values(employee: Employee, today: Optional[date] = None) -> dict[str, Optional[str]]:
    """封面 / 结尾页的占位符取值。"""
    return {
        "姓名": employee.name,
        "性别": employee.gender,
        "年龄": employee.age,
        "日期": format_cn_date(today or date.today()),
        "体检日期": format_cn_date(employee.exam_date) if employee.exam_date else "",
        "工号": employee.employee_no,
        "证件号": employee.id_number,
    }


class ReportPipeline(ABC):
    """体检报告流水线的抽象接口。"""

    @abstractmethod
    def run_employee(self, employee: Employee, output_name: str, files: list[str]) -> ReportOutcome:
        """为一名员工生成报告（不含转换与发送）。"""

    @abstractmethod
    async def run_batch(self, employees: list[Employee]) -> BatchSummary:
        """批量生成。单个员工失败不影响其他员工。"""


class DefaultReportPipeline(ReportPipeline):
    """模板页注入 + 可选 PDF 转换 / 企业微信发送。"""

    def __init__(
        self,
        config: ReportConfig,
        engine: Optional[ZipSlideInjectionEngine] = None,
        converter: Optional[PdfConverter] = None,
        messenger: Optional[MessengerClient] = None,
        rasterizers: Optional[list[PdfRasterizer]] = None,
    ):
        self.config = config
        self._engine = engine or ZipSlideInjectionEngine()
        self._converter = converter
        self._messenger = messenger
        self._rasterizers = rasterizers
        self._template_bytes: Optional[bytes] = None

        if config.convert_pdf and converter is None:
            raise ValueError("convert_pdf=True 时必须提供 converter")
        if config.deliver and (messenger is None or not config.convert_pdf):
            raise ValueError("deliver=True 时必须提供 messenger 并开启 convert_pdf")

    # ── 单个员工 ─────────────────────────────────────────────

    def _template(self) -> bytes:
        if self._template_bytes is None:
            self._template_bytes = Path(self.config.template_path).read_bytes()
        return self._template_bytes

    def image_pages(self, bundle: AssetBundle) -> list[ImagePage]:
        """图片附件原样使用，PDF 附件逐页栅格化，其他类型跳过。"""
        pages: list[ImagePage] = []
        for attachment in bundle.attachments:
            if attachment.kind == IMAGE:
                pages.append(ImagePage(
                    label=attachment.label,
                    category=attachment.category,
                    path=attachment.full_path,
                ))
            elif attachment.kind == PDF:
                rendered = attachment_pages(attachment, self._rasterizers)
                if not rendered:
                    logger.warning(f"{bundle.employee.name}: PDF 无法转换为图片，已跳过 {attachment.file_name}")
                pages.extend(rendered)
            else:
                logger.warning(f"{bundle.employee.name}: 不支持的附件类型，已跳过 {attachment.file_name}")
        return pages

    def build_requests(
        self,
        bundle: AssetBundle,
        pages: list[ImagePage],
        today: Optional[date] = None,
    ) -> list[SlideRequest]:
        """封面 → 图片页 → 总结页 → 结尾页，全部追加在末尾。"""
        slide_map = self.config.slide_map
        employee = bundle.employee
        base_values = cover_values(employee, today)

        requests = [SlideRequest(slide_map.cover, placeholder_values=base_values)]
        for page in pages:
            requests.append(SlideRequest(
                slide_map.image_slide_for(page.category),
                placeholder_values={
                    "影像标题": page.label,
                    "姓名": employee.name,
                    "工号": employee.employee_no,
                },
                image=page.source,
            ))
        if bundle.has_summary and slide_map.summary:
            requests.append(SlideRequest(
                slide_map.summary,
                placeholder_values={**base_values, "总结": bundle.summary_text},
            ))
        for number in slide_map.closing:
            requests.append(SlideRequest(number, placeholder_values=base_values))
        return requests

    def build_report(self, bundle: AssetBundle, output_path: Path, today: Optional[date] = None) -> int:
        """生成并保存报告，返回幻灯片数。"""
        template = OoxmlPackage.open(self._template())
        output = OoxmlPackage.open(build_base_deck(template, bundle.employee))

        requests = self.build_requests(bundle, self.image_pages(bundle), today)
        state = self._engine.run(template, output, requests)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        state.output.save(output_path)
        return len(slide_order(state.output))

    def run_employee(self, employee: Employee, output_name: str, files: list[str]) -> ReportOutcome:
        outcome = ReportOutcome(status=FAILED, employeeName=employee.name, idNumber=employee.id_number)
        try:
            bundle = collect_assets(employee, files, self.config.data_dir)
            if not bundle.has_summary and not bundle.has_attachments:
                outcome.status = SKIPPED
                outcome.reason = SKIP_REASON_NO_CONTENT
                logger.warning(f"{employee.name} 未生成：{SKIP_REASON_NO_CONTENT}")
                return outcome

            output_path = Path(self.config.output_dir) / output_name
            outcome.slide_count = self.build_report(bundle, output_path)
            outcome.output_path = output_path
            outcome.status = SUCCEEDED
            logger.info(f"已生成 {employee.name}（{employee.id_number}）：{output_path}")
        except Exception as e:  # 单人失败不影响整批
            outcome.reason = f"生成失败：{e}"
            logger.error(f"{employee.name} 生成失败：{e}")
        return outcome

    # ── 转换 / 发送 ──────────────────────────────────────────

    def _convert(self, outcome: ReportOutcome) -> None:
        try:
            outcome.pdf_path = self._converter.convert_to_pdf(outcome.output_path)
        except (FileNotFoundError, TimeoutError, RuntimeError, OSError) as e:
            outcome.status = FAILED
            outcome.reason = f"PDF转换失败：{e}"
            logger.error(f"{outcome.employee_name} PDF转换失败：{e}")

    def _deliver(self, outcome: ReportOutcome) -> None:
        if not outcome.id_number:
            outcome.status = FAILED
            outcome.reason = "缺少证件号，无法发送"
            logger.error(f"{outcome.employee_name} 缺少证件号，无法发送")
            return
        try:
            account_id = self._messenger.lookup_id(outcome.id_number)
            self._messenger.deliver_file(account_id, outcome.pdf_path.read_bytes(), outcome.pdf_path.name)
        except (LookupError, RuntimeError, ValueError, OSError, httpx.HTTPError) as e:
            outcome.status = FAILED
            outcome.reason = f"发送失败：{e}"
            logger.error(f"{outcome.employee_name} 发送失败：{e}")
            return
        outcome.delivered = True
        logger.info(f"已发送 {outcome.employee_name} → {account_id}")

    # ── 批量 ─────────────────────────────────────────────────

    async def run_batch(self, employees: list[Employee]) -> BatchSummary:
        if not employees:
            logger.warning("员工表为空，已结束")
            return BatchSummary()

        Path(self.config.output_dir).mkdir(parents=True, exist_ok=True)
        files = list_data_files(self.config.data_dir)
        names = assign_report_names(employees)
        sem = asyncio.Semaphore(max(1, self.config.max_concurrency))
        convert_sem = asyncio.Semaphore(max(1, self.config.converter_concurrency))

        async def one(employee: Employee, output_name: str) -> ReportOutcome:
            async with sem:
                outcome = await asyncio.to_thread(self.run_employee, employee, output_name, files)
            if outcome.status != SUCCEEDED or not self.config.convert_pdf:
                return outcome
            async with convert_sem:
                await asyncio.to_thread(self._convert, outcome)
            if outcome.status == SUCCEEDED and self.config.deliver:
                await asyncio.to_thread(self._deliver, outcome)
            return outcome

        outcomes = await asyncio.gather(*(one(e, n) for e, n in zip(employees, names)))
        return BatchSummary(outcomes=list(outcomes))
