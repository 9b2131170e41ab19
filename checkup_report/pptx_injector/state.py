"""单个输出文件的注入运行状态。

一次“打开输出包 → 注入 N 页 → finalize → 序列化”对应一个 RunState，
用完即弃。每位员工的任务各自持有自己的 RunState，互不共享。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .content_types import ContentTypes
from .ids import IdAllocator
from .package import (
    CONTENT_TYPES_PART,
    PRESENTATION_PART,
    PRESENTATION_RELS_PART,
    OoxmlPackage,
    PackageStructureError,
)
from .relationships import Relationship, parse_relationships

START = "start"
MIDDLE = "middle"
END = "end"
POSITIONS = (START, MIDDLE, END)


@dataclass
class SlideRecord:
    slide_number: int
    path: str                       # ppt/slides/slideN.xml
    position: str                   # start / middle / end
    template_slide_number: int = 0
    slide_id: Optional[int] = None  # finalize 时分配
    rel_id: Optional[str] = None    # finalize 时分配


@dataclass
class ThemeInfo:
    new_path: str


@dataclass
class MasterInfo:
    new_path: str
    theme_path: Optional[str] = None


@dataclass
class LayoutInfo:
    new_path: str
    master_path: str = ""


@dataclass
class RunState:
    template: OoxmlPackage
    output: OoxmlPackage
    presentation_xml: str
    presentation_rels: list[Relationship]
    content_types: ContentTypes
    template_content_types: ContentTypes
    ids: IdAllocator

    # 克隆备忘表，键为模板包内的源路径
    layouts: dict[str, LayoutInfo] = field(default_factory=dict)
    masters: dict[str, MasterInfo] = field(default_factory=dict)
    themes: dict[str, ThemeInfo] = field(default_factory=dict)
    media: dict[str, str] = field(default_factory=dict)
    # 备注页属于唯一一张幻灯片，按 (源路径, 新幻灯片路径) 记
    notes_slides: dict[tuple[str, str], str] = field(default_factory=dict)
    notes_masters: dict[str, str] = field(default_factory=dict)
    generic: dict[str, str] = field(default_factory=dict)

    pending: list[SlideRecord] = field(default_factory=list)
    created: list[str] = field(default_factory=list)       # 本次新建、需要 Override 的 part
    new_masters: list[str] = field(default_factory=list)   # 需在 presentation.xml 登记的母版
    new_notes_master: Optional[str] = None
    # 幻灯片间跳转链接 (新幻灯片, 关系 Id, 模板内目标页)，finalize 时改指向目标页的副本
    slide_links: list[tuple[str, str, str]] = field(default_factory=list)
    dangling: list[tuple[str, str]] = field(default_factory=list)  # (所属 part, 缺失目标)
    finalized: bool = False

    @classmethod
    def begin(cls, template: OoxmlPackage, output: OoxmlPackage) -> "RunState":
        """读取输出包的三个协调文件，缺任何一个都视为结构错误。"""
        presentation_xml = output.get_text(PRESENTATION_PART)
        if presentation_xml is None:
            raise PackageStructureError(f"输出包缺少 {PRESENTATION_PART}")
        rels_xml = output.get_text(PRESENTATION_RELS_PART)
        if rels_xml is None:
            raise PackageStructureError(f"输出包缺少 {PRESENTATION_RELS_PART}")
        ct_xml = output.get_text(CONTENT_TYPES_PART)
        if ct_xml is None:
            raise PackageStructureError(f"输出包缺少 {CONTENT_TYPES_PART}")
        template_ct = template.get_text(CONTENT_TYPES_PART)
        if template_ct is None:
            raise PackageStructureError(f"模板缺少 {CONTENT_TYPES_PART}")

        return cls(
            template=template,
            output=output,
            presentation_xml=presentation_xml,
            presentation_rels=parse_relationships(rels_xml),
            content_types=ContentTypes(ct_xml),
            template_content_types=ContentTypes(template_ct),
            ids=IdAllocator(output, presentation_xml, rels_xml),
        )

    def records_at(self, position: str) -> list[SlideRecord]:
        return [r for r in self.pending if r.position == position]

    def injected_copy(self, template_path: str) -> Optional[str]:
        """模板页在本次输出中的第一个副本路径；没有注入过时为 None。"""
        for record in self.pending:
            if f"ppt/slides/slide{record.template_slide_number}.xml" == template_path:
                return record.path
        return None
