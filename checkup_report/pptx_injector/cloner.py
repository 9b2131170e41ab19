"""模板资源克隆：版式/母版/主题/媒体/备注/通用 part 按源路径只复制一次。

依赖顺序 主题 → 母版 → 版式 → 幻灯片 由递归解析保证：
clone_layout 先解析出所属母版并克隆母版，母版再克隆主题和它列出的全部版式。
调用方不需要关心顺序。
"""

from __future__ import annotations

import logging
import posixpath
import re
from typing import Callable, Optional

from .content_types import (
    CT_NOTES_MASTER,
    CT_NOTES_SLIDE,
    CT_SLIDE_LAYOUT,
    CT_SLIDE_MASTER,
    CT_THEME,
    media_type_for,
)
from .package import PRESENTATION_PART, PackageStructureError
from .relationships import (
    REL_NOTES_MASTER,
    REL_SLIDE,
    REL_SLIDE_LAYOUT,
    REL_SLIDE_MASTER,
    REL_THEME,
    Relationship,
    build_relationships_xml,
    parse_relationships,
    rels_path_for,
    relative_target,
    resolve_target,
)
from .state import LayoutInfo, MasterInfo, RunState, ThemeInfo

logger = logging.getLogger(__name__)

# 关系类型末段属于这些时按媒体处理
_MEDIA_REL_KINDS = {"image", "media", "video", "audio", "hdphoto"}

_LAYOUT_ID_ATTR_RE = re.compile(
    r"""(<(?:\w+:)?sldLayoutId\b[^>]*?(?<![:\w])id\s*=\s*["'])(\d+)(["'])"""
)
_NUMBERED_NAME_RE = re.compile(r"^(.*?)(\d*)(\.[^./]+)?$")

# (关系, 源目标绝对路径) → 新目标路径；None 表示目标缺失，保留原 Target
Rewriter = Callable[[Relationship, str], Optional[str]]


def is_media_relationship(rel: Relationship) -> bool:
    return rel.type.rsplit("/", 1)[-1] in _MEDIA_REL_KINDS


def register_part(state: RunState, path: str, content_type: str) -> None:
    state.content_types.ensure_override(path, content_type)
    state.created.append(path)


def _mark_dangling(state: RunState, owner: str, target: str, what: str) -> None:
    logger.warning(f"模板缺少{what}：{target}（引用方 {owner}），保留原引用")
    state.dangling.append((owner, target))


def clone_relationships(
    state: RunState,
    src_part: str,
    new_part: str,
    rewrite: Rewriter,
    write_empty: bool = True,
) -> list[Relationship]:
    """复制 src_part 的 .rels 到 new_part，逐条用 rewrite 改写内部目标。

    外部关系原样保留。模板没有 .rels 时按 write_empty 决定是否写一个空的。
    """
    rels_xml = state.template.get_text(rels_path_for(src_part))
    if rels_xml is None:
        if write_empty:
            state.output.put(rels_path_for(new_part), build_relationships_xml([]))
        return []

    rels = parse_relationships(rels_xml)
    for rel in rels:
        if rel.is_external:
            continue
        new_target = rewrite(rel, resolve_target(src_part, rel.target))
        if new_target is not None:
            rel.target = relative_target(new_part, new_target)
    state.output.put(rels_path_for(new_part), build_relationships_xml(rels))
    return rels


def clone_target(state: RunState, owner: str, rel: Relationship, source: str) -> Optional[str]:
    """按关系类型分派的默认克隆逻辑。"""
    if rel.type_is(REL_SLIDE_LAYOUT):
        return clone_layout(state, source).new_path
    if rel.type_is(REL_SLIDE_MASTER):
        return clone_master(state, source).new_path
    if rel.type_is(REL_THEME):
        return clone_theme(state, source).new_path
    if is_media_relationship(rel):
        return clone_media(state, source, owner=owner)
    if rel.type_is(REL_NOTES_MASTER):
        return ensure_notes_master(state, source)
    if rel.type_is(REL_SLIDE):
        # 跳转到其它模板页的链接：只认本次注入的副本，输出包里同名的页与模板无关
        copy = state.injected_copy(source)
        if copy is not None:
            return copy
        _mark_dangling(state, owner, source, "幻灯片")
        return None
    return clone_generic_part(state, source, owner=owner)


# ── 媒体 ──


def clone_media(state: RunState, src: str, owner: str = "") -> Optional[str]:
    """媒体字节原样复制为 ppt/media/template_media_<n>.<ext>。"""
    if src in state.media:
        return state.media[src]

    data = state.template.get_binary(src)
    if data is None:
        _mark_dangling(state, owner, src, "媒体")
        return None

    ext = posixpath.splitext(src)[1].lstrip(".").lower() or "bin"
    new_path = state.ids.new_media_path("template_media", ext)
    state.output.put(new_path, data)
    content_type = state.template_content_types.defaults().get(ext) or media_type_for(ext)
    state.content_types.ensure_default(ext, content_type)
    state.media[src] = new_path
    return new_path


# ── 主题 / 母版 / 版式 ──


def clone_theme(state: RunState, src: str) -> ThemeInfo:
    if src in state.themes:
        return state.themes[src]

    xml = state.template.get_text(src)
    if xml is None:
        raise PackageStructureError(f"模板缺少主题文件：{src}")

    new_path = f"ppt/theme/theme{state.ids.next_theme_number()}.xml"
    info = ThemeInfo(new_path=new_path)
    state.themes[src] = info
    state.output.put(new_path, xml)
    register_part(state, new_path, CT_THEME)

    clone_relationships(
        state, src, new_path,
        lambda rel, source: clone_target(state, src, rel, source),
        write_empty=False,
    )
    return info


def clone_master(state: RunState, src: str) -> MasterInfo:
    """克隆母版：先主题，再母版列出的全部版式（版式 ID 重新分配）。"""
    if src in state.masters:
        return state.masters[src]

    xml = state.template.get_text(src)
    if xml is None:
        raise PackageStructureError(f"模板缺少母版文件：{src}")

    new_path = f"ppt/slideMasters/slideMaster{state.ids.next_master_number()}.xml"
    info = MasterInfo(new_path=new_path)
    state.masters[src] = info
    state.new_masters.append(new_path)

    # 版式 ID 与目标包已有的母版/版式 ID 共用一个空间
    xml = _LAYOUT_ID_ATTR_RE.sub(
        lambda m: f"{m.group(1)}{state.ids.next_layout_id()}{m.group(3)}", xml
    )
    state.output.put(new_path, xml)
    register_part(state, new_path, CT_SLIDE_MASTER)

    def rewrite(rel: Relationship, source: str) -> Optional[str]:
        if rel.type_is(REL_THEME):
            theme = clone_theme(state, source)
            info.theme_path = theme.new_path
            return theme.new_path
        if rel.type_is(REL_SLIDE_LAYOUT):
            return _copy_layout(state, source, new_path).new_path
        return clone_target(state, src, rel, source)

    clone_relationships(state, src, new_path, rewrite)
    if info.theme_path is None:
        logger.warning(f"母版没有主题关系：{src}")
    return info


def clone_layout(state: RunState, src: str) -> LayoutInfo:
    """版式不能单独复制：先解析并克隆它的母版，母版会顺带复制此版式。"""
    if src in state.layouts:
        return state.layouts[src]

    rels_xml = state.template.get_text(rels_path_for(src))
    if rels_xml is None:
        raise PackageStructureError(f"模板布局缺少关系文件：{rels_path_for(src)}")
    master_rel = next(
        (r for r in parse_relationships(rels_xml) if r.type_is(REL_SLIDE_MASTER)), None
    )
    if master_rel is None:
        raise PackageStructureError(f"布局文件未关联母版：{src}")

    clone_master(state, resolve_target(src, master_rel.target))
    info = state.layouts.get(src)
    if info is None:
        raise PackageStructureError(f"母版未列出布局，复制失败：{src}")
    return info


def _copy_layout(state: RunState, src: str, master_path: str) -> LayoutInfo:
    if src in state.layouts:
        return state.layouts[src]

    xml = state.template.get_text(src)
    if xml is None:
        raise PackageStructureError(f"模板缺少布局文件：{src}")

    new_path = f"ppt/slideLayouts/slideLayout{state.ids.next_layout_number()}.xml"
    info = LayoutInfo(new_path=new_path, master_path=master_path)
    state.layouts[src] = info
    state.output.put(new_path, xml)
    register_part(state, new_path, CT_SLIDE_LAYOUT)

    def rewrite(rel: Relationship, source: str) -> Optional[str]:
        if rel.type_is(REL_SLIDE_MASTER):
            return master_path
        return clone_target(state, src, rel, source)

    rels = clone_relationships(state, src, new_path, rewrite)
    if not any(r.type_is(REL_SLIDE_MASTER) for r in rels):
        raise PackageStructureError(f"布局文件未关联母版：{src}")
    return info


# ── 备注 ──


def clone_notes_slide(state: RunState, src: str, new_slide_path: str) -> Optional[str]:
    """复制备注页，并把它的 slide 反向引用指向新幻灯片。"""
    key = (src, new_slide_path)
    if key in state.notes_slides:
        return state.notes_slides[key]

    xml = state.template.get_text(src)
    if xml is None:
        _mark_dangling(state, new_slide_path, src, "备注页")
        return None

    new_path = f"ppt/notesSlides/notesSlide{state.ids.next_notes_slide_number()}.xml"
    state.notes_slides[key] = new_path
    state.output.put(new_path, xml)
    register_part(state, new_path, CT_NOTES_SLIDE)

    def rewrite(rel: Relationship, source: str) -> Optional[str]:
        if rel.type_is(REL_SLIDE):
            return new_slide_path
        return clone_target(state, src, rel, source)

    clone_relationships(state, src, new_path, rewrite)
    return new_path


def _existing_notes_master(state: RunState) -> Optional[str]:
    for rel in state.presentation_rels:
        if rel.type_is(REL_NOTES_MASTER) and not rel.is_external:
            path = resolve_target(PRESENTATION_PART, rel.target)
            if state.output.has(path):
                return path
    return None


def ensure_notes_master(state: RunState, src: str) -> Optional[str]:
    """优先复用输出包已有的备注母版；没有时复制模板的（连同主题）。"""
    if src in state.notes_masters:
        return state.notes_masters[src]

    existing = _existing_notes_master(state)
    if existing is not None:
        state.notes_masters[src] = existing
        return existing

    xml = state.template.get_text(src)
    if xml is None:
        _mark_dangling(state, "", src, "备注母版")
        return None

    new_path = f"ppt/notesMasters/notesMaster{state.ids.next_notes_master_number()}.xml"
    state.notes_masters[src] = new_path
    state.new_notes_master = new_path
    state.output.put(new_path, xml)
    register_part(state, new_path, CT_NOTES_MASTER)

    clone_relationships(
        state, src, new_path,
        lambda rel, source: clone_target(state, src, rel, source),
    )
    return new_path


# ── 通用 part ──


def _free_sibling(state: RunState, path: str) -> str:
    """path 被占用时，取同目录下编号递增的空闲文件名。"""
    if not state.output.has(path):
        return path
    directory, name = posixpath.split(path)
    m = _NUMBERED_NAME_RE.match(name)
    stem, digits, ext = m.group(1), m.group(2), m.group(3) or ""
    n = int(digits) + 1 if digits else 1
    while True:
        candidate = posixpath.join(directory, f"{stem}{n}{ext}")
        if not state.output.has(candidate):
            return candidate
        n += 1


def clone_generic_part(state: RunState, src: str, owner: str = "") -> Optional[str]:
    """其它类型的 part（标签、图表、嵌入对象等）。

    ppt/ 以外的目标不处理，原路径返回。内容类型从模板的 Override（或扩展名 Default）复制。
    """
    if not src.startswith("ppt/"):
        return src
    if src in state.generic:
        return state.generic[src]

    data = state.template.get_binary(src)
    if data is None:
        _mark_dangling(state, owner, src, "资源")
        return None

    new_path = _free_sibling(state, src)
    state.generic[src] = new_path
    state.output.put(new_path, data)

    override = state.template_content_types.overrides().get(f"/{src}".lower())
    if override:
        state.content_types.ensure_override(new_path, override)
    else:
        ext = posixpath.splitext(src)[1].lstrip(".").lower()
        default = state.template_content_types.defaults().get(ext)
        if default:
            state.content_types.ensure_default(ext, default)

    clone_relationships(
        state, src, new_path,
        lambda rel, source: clone_target(state, src, rel, source),
        write_empty=False,
    )
    return new_path
