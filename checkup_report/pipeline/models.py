"""报告生成流水线的配置与结果模型。"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field

SUCCEEDED = "succeeded"
SKIPPED = "skipped"
FAILED = "failed"

SKIP_REASON_NO_CONTENT = "缺少体检结果与AI总结"


class SlideMap(BaseModel):
    """报告各部分取自模板的第几页（slideN.xml 的 N）。

    image_slides 按附件分类选页，识别不出分类的图片使用 default_image。
    模板中不存在的页会被跳过并记录警告。
    """
    cover: int = 1
    image_slides: dict[str, int] = Field(
        default_factory=lambda: {"化验": 2, "体成分": 3, "心电图": 4},
        alias="imageSlides",
    )
    default_image: int = Field(2, alias="defaultImage")
    summary: Optional[int] = 5
    closing: list[int] = Field(default_factory=lambda: [6])

    model_config = {"populate_by_name": True}

    def image_slide_for(self, category: str) -> int:
        return self.image_slides.get(category, self.default_image)

    @classmethod
    def from_json_file(cls, path: Path) -> "SlideMap":
        return cls.model_validate(json.loads(Path(path).read_text(encoding="utf-8")))


class ReportConfig(BaseModel):
    """一次批量生成的设置。"""
    template_path: Path = Field(alias="templatePath")
    data_dir: Path = Field(alias="dataDir")
    output_dir: Path = Field(Path("output"), alias="outputDir")
    slide_map: SlideMap = Field(default_factory=SlideMap, alias="slideMap")
    convert_pdf: bool = Field(False, alias="convertPdf")
    deliver: bool = False
    max_concurrency: int = Field(4, alias="maxConcurrency")
    converter_concurrency: int = Field(1, alias="converterConcurrency")

    model_config = {"populate_by_name": True}


class ReportOutcome(BaseModel):
    """单个员工的处理结果。"""
    status: Literal["succeeded", "skipped", "failed"]
    employee_name: str = Field(alias="employeeName")
    id_number: str = Field("", alias="idNumber")
    output_path: Optional[Path] = Field(None, alias="outputPath")
    pdf_path: Optional[Path] = Field(None, alias="pdfPath")
    delivered: bool = False
    slide_count: int = Field(0, alias="slideCount")
    reason: str = ""

    model_config = {"populate_by_name": True}

    @property
    def is_success(self) -> bool:
        return self.status == SUCCEEDED


class BatchSummary(BaseModel):
    """批量执行结果，按员工原始顺序排列。"""
    outcomes: list[ReportOutcome] = Field(default_factory=list)

    @property
    def succeeded(self) -> list[ReportOutcome]:
        return [o for o in self.outcomes if o.status == SUCCEEDED]

    @property
    def skipped(self) -> list[ReportOutcome]:
        return [o for o in self.outcomes if o.status == SKIPPED]

    @property
    def failed(self) -> list[ReportOutcome]:
        return [o for o in self.outcomes if o.status == FAILED]

    @property
    def is_success(self) -> bool:
        return not self.failed
