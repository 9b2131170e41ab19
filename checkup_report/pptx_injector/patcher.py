"""finalize：注入结束后一次性改写 presentation.xml / .rels / [Content_Types].xml / app.xml。"""

from __future__ import annotations

import logging
import re
from typing import Optional

from lxml import etree

from .content_types import override_type_for
from .package import (
    CONTENT_TYPES_PART,
    PRESENTATION_PART,
    PRESENTATION_RELS_PART,
    PackageStructureError,
)
from .relationships import (
    REL_NOTES_MASTER,
    REL_SLIDE,
    REL_SLIDE_MASTER,
    Relationship,
    build_relationships_xml,
    parse_relationships,
    relative_target,
    rels_path_for,
    serialize_xml,
)
from .state import END, MIDDLE, START, RunState, SlideRecord

logger = logging.getLogger(__name__)

APP_PART = "docProps/app.xml"
_NS_EP = "http://schemas.openxmlformats.org/officeDocument/2006/extended-properties"

# 命名空间前缀不一定是 p:，取文档里实际使用的前缀
_PFX = r"(?P<pfx>(?:\w+:)?)"
_SLD_ID_LST_RE = re.compile(rf"<{_PFX}sldIdLst\b[^>]*?(?:/>|>(?P<body>.*?)</(?P=pfx)sldIdLst>)", re.S)
_SLD_ID_RE = re.compile(r"<(?P<pfx>(?:\w+:)?)sldId\b[^>]*?(?:/>|>.*?</(?P=pfx)sldId>)", re.S)
_MASTER_LST_RE = re.compile(rf"<{_PFX}sldMasterIdLst\b[^>]*?(?:/>|>(?P<body>.*?)</(?P=pfx)sldMasterIdLst>)", re.S)
_MASTER_ID_RE = re.compile(r"<(?P<pfx>(?:\w+:)?)sldMasterId\b[^>]*?(?:/>|>.*?</(?P=pfx)sldMasterId>)", re.S)
_NOTES_MASTER_LST_RE = re.compile(rf"<{_PFX}notesMasterIdLst\b[^>]*?(?:/>|>.*?</(?P=pfx)notesMasterIdLst>)", re.S)
_PRESENTATION_OPEN_RE = re.compile(rf"<{_PFX}presentation\b[^>]*>")


def finalize(state: RunState) -> None:
    """每个 RunState 只能调用一次。"""
    if state.finalized:
        raise RuntimeError("finalize 已执行过")

    _resolve_slide_links(state)

    xml = state.presentation_xml
    for record in state.pending:
        record.slide_id = state.ids.next_slide_id()
        record.rel_id = f"rId{state.ids.next_rel_id()}"
        state.presentation_rels.append(Relationship(
            id=record.rel_id,
            type=REL_SLIDE,
            target=relative_target(PRESENTATION_PART, record.path),
        ))
    if state.pending:
        xml = _rebuild_slide_list(xml, state)

    if state.new_masters:
        xml = _append_masters(xml, state)
    if state.new_notes_master:
        xml = _set_notes_master(xml, state)

    for path in state.created:
        ctype = override_type_for(path)
        if ctype:
            state.content_types.ensure_override(path, ctype)

    state.presentation_xml = xml
    state.output.put(PRESENTATION_PART, xml)
    state.output.put(PRESENTATION_RELS_PART, build_relationships_xml(state.presentation_rels))
    state.output.put(CONTENT_TYPES_PART, state.content_types.xml)
    _update_app_xml(state)
    state.finalized = True

    logger.debug(
        f"finalize: 新增 {len(state.pending)} 页, 母版 {len(state.new_masters)} 个, "
        f"悬空引用 {len(state.dangling)} 处"
    )


def _resolve_slide_links(state: RunState) -> None:
    """幻灯片间的跳转改指向目标页在本次输出中的副本；目标页没注入则记为悬空。"""
    by_owner: dict[str, dict[str, str]] = {}
    for owner, rel_id, source in state.slide_links:
        by_owner.setdefault(owner, {})[rel_id] = source

    for owner, links in by_owner.items():
        rels_part = rels_path_for(owner)
        rels_xml = state.output.get_text(rels_part)
        if rels_xml is None:
            continue
        rels = parse_relationships(rels_xml)
        for rel in rels:
            source = links.get(rel.id)
            if source is None:
                continue
            copy = state.injected_copy(source)
            if copy is None:
                logger.warning(f"跳转目标页未注入：{source}（引用方 {owner}），保留原引用")
                state.dangling.append((owner, source))
                continue
            rel.target = relative_target(owner, copy)
        state.output.put(rels_part, build_relationships_xml(rels))


def _prefix(xml: str, m: Optional[re.Match] = None) -> str:
    """列表自身的前缀，没有列表时取根元素的前缀。"""
    if m is not None:
        return m.group("pfx")
    root = _PRESENTATION_OPEN_RE.search(xml)
    return root.group("pfx") if root else "p:"


def _entries(pattern: re.Pattern, m: Optional[re.Match]) -> list[str]:
    if m is None:
        return []
    return [e.group(0) for e in pattern.finditer(m.group("body") or "")]


def slide_entry(record: SlideRecord, pfx: str = "p:") -> str:
    return f'<{pfx}sldId id="{record.slide_id}" r:id="{record.rel_id}"/>'


def _rebuild_slide_list(xml: str, state: RunState) -> str:
    """start 新页 → 原有条目（原样）→ middle 新页 → end 新页。"""
    m = _SLD_ID_LST_RE.search(xml)
    pfx = _prefix(xml, m)

    entries = [slide_entry(r, pfx) for r in state.records_at(START)]
    entries += _entries(_SLD_ID_RE, m)
    entries += [slide_entry(r, pfx) for r in state.records_at(MIDDLE)]
    entries += [slide_entry(r, pfx) for r in state.records_at(END)]
    block = f"<{pfx}sldIdLst>{''.join(entries)}</{pfx}sldIdLst>"

    if m:
        return f"{xml[:m.start()]}{block}{xml[m.end():]}"

    for anchor in (f"<{pfx}sldSz", f"<{pfx}notesSz"):
        idx = xml.find(anchor)
        if idx >= 0:
            return f"{xml[:idx]}{block}{xml[idx:]}"
    raise PackageStructureError("presentation.xml 缺少 sldIdLst 且找不到插入位置")


def _append_masters(xml: str, state: RunState) -> str:
    m = _MASTER_LST_RE.search(xml)
    pfx = _prefix(xml, m)

    new_entries = []
    for path in state.new_masters:
        rel_id = f"rId{state.ids.next_rel_id()}"
        new_entries.append(f'<{pfx}sldMasterId id="{state.ids.next_master_id()}" r:id="{rel_id}"/>')
        state.presentation_rels.append(Relationship(
            id=rel_id,
            type=REL_SLIDE_MASTER,
            target=relative_target(PRESENTATION_PART, path),
        ))

    block = f"<{pfx}sldMasterIdLst>{''.join(_entries(_MASTER_ID_RE, m) + new_entries)}</{pfx}sldMasterIdLst>"
    if m:
        return f"{xml[:m.start()]}{block}{xml[m.end():]}"

    # sldMasterIdLst 必须是 presentation 的第一个子元素
    opening = _PRESENTATION_OPEN_RE.search(xml)
    if opening is None:
        raise PackageStructureError("presentation.xml 缺少 presentation 根元素")
    return f"{xml[:opening.end()]}{block}{xml[opening.end():]}"


def _set_notes_master(xml: str, state: RunState) -> str:
    rel_id = f"rId{state.ids.next_rel_id()}"
    state.presentation_rels.append(Relationship(
        id=rel_id,
        type=REL_NOTES_MASTER,
        target=relative_target(PRESENTATION_PART, state.new_notes_master),
    ))

    m = _NOTES_MASTER_LST_RE.search(xml)
    pfx = _prefix(xml, m)
    block = f'<{pfx}notesMasterIdLst><{pfx}notesMasterId r:id="{rel_id}"/></{pfx}notesMasterIdLst>'
    if m:
        return f"{xml[:m.start()]}{block}{xml[m.end():]}"
    # 紧跟在 sldMasterIdLst 之后
    masters = _MASTER_LST_RE.search(xml)
    if masters is None:
        raise PackageStructureError("presentation.xml 缺少 sldMasterIdLst")
    return f"{xml[:masters.end()]}{block}{xml[masters.end():]}"


def _update_app_xml(state: RunState) -> None:
    """docProps/app.xml 的 <Slides> 与实际页数对齐。"""
    raw = state.output.get_binary(APP_PART)
    if raw is None:
        return
    try:
        root = etree.fromstring(raw)
    except etree.XMLSyntaxError as e:
        logger.warning(f"app.xml 无法解析，跳过页数更新：{e}")
        return

    el = root.find(f"{{{_NS_EP}}}Slides")
    if el is None:
        return
    el.text = str(len(_entries(_SLD_ID_RE, _SLD_ID_LST_RE.search(state.presentation_xml))))

    state.output.put(APP_PART, serialize_xml(root))
