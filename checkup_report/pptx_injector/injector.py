"""单页注入：把模板中的一张幻灯片复制进输出包。

复制幻灯片 XML、替换文本/图片占位符、克隆关系链、登记内容类型，
最后只记一条 SlideRecord；presentation.xml 的改写留给 finalize 统一处理。
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional, Union

from ..pptx_replacer.images import (
    ImagePayload,
    append_picture,
    build_picture_xml,
    content_area,
    decode_image,
    find_largest_picture,
    fit_contain,
    image_size,
    next_shape_id,
    set_picture_frame,
    slide_size,
)
from ..pptx_replacer.replacer import SlideTextReplacer, XmlTextReplacer
from .cloner import clone_notes_slide, clone_relationships, clone_target, is_media_relationship, register_part
from .content_types import CT_SLIDE
from .package import PackageStructureError
from .relationships import (
    REL_IMAGE,
    REL_NOTES_SLIDE,
    REL_SLIDE,
    Relationship,
    build_relationships_xml,
    parse_relationships,
    relative_target,
    rels_path_for,
)
from .state import POSITIONS, RunState, SlideRecord

logger = logging.getLogger(__name__)

IMAGE_MARKER_KEY = "影像"

_RID_RE = re.compile(r"^rId(\d+)$")

ImageSource = Union[bytes, str, Path, ImagePayload]


def template_slide_path(number: int) -> str:
    return f"ppt/slides/slide{number}.xml"


class TemplateSlideInjector:
    """模板页 → 输出包的复制器。一个实例可服务多个 RunState。"""

    def __init__(self, replacer: Optional[SlideTextReplacer] = None):
        self.replacer = replacer or XmlTextReplacer()

    def inject_slide(
        self,
        state: RunState,
        template_slide_number: int,
        position: str,
        placeholder_values: Optional[dict[str, Optional[str]]] = None,
        image: Optional[ImageSource] = None,
    ) -> Optional[SlideRecord]:
        """复制一张模板页。模板没有这一页时记警告并返回 None。"""
        if state.finalized:
            raise RuntimeError("RunState 已 finalize，不能继续注入")
        if position not in POSITIONS:
            raise ValueError(f"未知的位置：{position}")

        src = template_slide_path(template_slide_number)
        xml = state.template.get_text(src)
        if xml is None:
            logger.warning(f"模板中没有第 {template_slide_number} 页，跳过")
            return None

        template_rels_xml = state.template.get_text(rels_path_for(src))
        if template_rels_xml is None:
            raise PackageStructureError(f"模板幻灯片缺少关系文件：{rels_path_for(src)}")
        template_rels = parse_relationships(template_rels_xml)

        number = state.ids.next_slide_number()
        new_path = template_slide_path(number)

        if placeholder_values:
            xml = self.replacer.replace(xml, placeholder_values)

        image_targets: dict[str, str] = {}
        extra_rels: list[Relationship] = []
        if image is not None:
            xml = self._place_image(state, new_path, xml, template_rels, image, image_targets, extra_rels)

        state.output.put(new_path, xml)
        register_part(state, new_path, CT_SLIDE)

        def rewrite(rel: Relationship, source: str) -> Optional[str]:
            if rel.id in image_targets:
                return image_targets[rel.id]
            if rel.type_is(REL_NOTES_SLIDE):
                return clone_notes_slide(state, source, new_path)
            if rel.type_is(REL_SLIDE):
                # 目标页可能在本页之后才注入，留到 finalize 再改写
                state.slide_links.append((new_path, rel.id, source))
                return None
            return clone_target(state, src, rel, source)

        rels = clone_relationships(state, src, new_path, rewrite)
        if extra_rels:
            state.output.put(rels_path_for(new_path), build_relationships_xml(rels + extra_rels))

        record = SlideRecord(
            slide_number=number,
            path=new_path,
            position=position,
            template_slide_number=template_slide_number,
        )
        state.pending.append(record)
        logger.debug(f"注入模板第 {template_slide_number} 页 → {new_path} ({position})")
        return record

    def _place_image(
        self,
        state: RunState,
        new_path: str,
        xml: str,
        template_rels: list[Relationship],
        image: ImageSource,
        image_targets: dict[str, str],
        extra_rels: list[Relationship],
    ) -> str:
        """写入图片媒体，并让页面最大的图片框引用它；页面没有图片时新建一个。"""
        payload = decode_image(image)
        media_path = state.ids.new_media_path("image", payload.ext)
        state.output.put(media_path, payload.data)
        state.content_types.ensure_default(payload.ext, payload.content_type)
        size = image_size(payload.data)

        media_rids = {r.id for r in template_rels if is_media_relationship(r) and not r.is_external}
        frame = find_largest_picture(xml, media_rids)
        if frame is not None:
            image_targets[frame.embed_rid] = media_path
            xml = set_picture_frame(xml, frame, *fit_contain(frame.x, frame.y, frame.cx, frame.cy, size))
        else:
            rid = f"rId{self._next_local_rid(template_rels)}"
            extra_rels.append(Relationship(id=rid, type=REL_IMAGE, target=relative_target(new_path, media_path)))
            slide_cx, slide_cy = slide_size(state.presentation_xml)
            area = content_area(xml, slide_cx, slide_cy)
            shape_id = next_shape_id(xml)
            picture = build_picture_xml(shape_id, rid, f"图片 {shape_id}", *fit_contain(*area, size))
            xml = append_picture(xml, picture)

        return self.replacer.remove_marker(xml, IMAGE_MARKER_KEY)

    @staticmethod
    def _next_local_rid(rels: list[Relationship]) -> int:
        numbers = [int(m.group(1)) for r in rels if (m := _RID_RE.match(r.id))]
        return max(numbers, default=0) + 1
