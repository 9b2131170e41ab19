"""输出包完整性检查：关系闭包、内容类型完整性、ID 唯一性、幻灯片顺序。

供测试和 `checkup-report check` 命令使用，只读不改。
"""

from __future__ import annotations

import posixpath
import re
from collections import Counter

from .content_types import ContentTypes, override_type_for
from .ids import LAYOUT_ID_RE, MASTER_ID_RE, SLIDE_ID_RE, scan_ids
from .package import CONTENT_TYPES_PART, PRESENTATION_PART, OoxmlPackage, PackageStructureError
from .relationships import parse_relationships, rels_path_for, resolve_target

_SLD_ID_TAG_RE = re.compile(r"<(?:\w+:)?sldId\b[^>]*>")
_R_ID_RE = re.compile(r"""\br:id\s*=\s*["']([^"']+)["']""")


def owner_of(rels_path: str) -> str:
    """ppt/slides/_rels/slide1.xml.rels → ppt/slides/slide1.xml；_rels/.rels → ''"""
    directory, name = posixpath.split(rels_path)
    parent = posixpath.dirname(directory)
    return posixpath.join(parent, name[: -len(".rels")]) if name != ".rels" else ""


def find_dangling_relationships(pkg: OoxmlPackage) -> list[tuple[str, str]]:
    """(所属 part, 解析后的目标)：目标在包内不存在的内部关系。"""
    dangling = []
    for rels_path in pkg.list_matching(r"(?:.*/)?_rels/[^/]*\.rels"):
        owner = owner_of(rels_path)
        for rel in parse_relationships(pkg.get_text(rels_path)):
            if rel.is_external:
                continue
            target = resolve_target(owner, rel.target)
            if not pkg.has(target):
                dangling.append((owner, target))
    return dangling


def find_missing_content_types(pkg: OoxmlPackage) -> list[str]:
    """没有有效内容类型的 part，以及按目录应有 Override 却没有的 part。"""
    ct = ContentTypes(pkg.get_text(CONTENT_TYPES_PART) or "")
    missing = []
    for path in pkg.part_names:
        if path == CONTENT_TYPES_PART:
            continue
        if override_type_for(path) and not ct.has_override(path):
            missing.append(path)
        elif ct.content_type_of(path) is None:
            missing.append(path)
    return missing


def find_duplicate_content_types(pkg: OoxmlPackage) -> list[str]:
    return ContentTypes(pkg.get_text(CONTENT_TYPES_PART) or "").duplicates()


def find_duplicate_ids(pkg: OoxmlPackage) -> list[int]:
    """presentation.xml 的幻灯片 ID、以及母版/版式共享空间里的重复 ID。"""
    xml = pkg.get_text(PRESENTATION_PART) or ""
    slide_counts = Counter(int(n) for n in SLIDE_ID_RE.findall(xml))
    shared = Counter(int(n) for n in MASTER_ID_RE.findall(xml))
    for path in pkg.list_matching(r"ppt/slideMasters/slideMaster\d+\.xml"):
        shared.update(int(n) for n in LAYOUT_ID_RE.findall(pkg.get_text(path)))
    return sorted(n for c in (slide_counts, shared) for n, k in c.items() if k > 1)


def slide_ids(pkg: OoxmlPackage) -> list[int]:
    return sorted(scan_ids(SLIDE_ID_RE, pkg.get_text(PRESENTATION_PART) or ""))


def slide_order(pkg: OoxmlPackage) -> list[str]:
    """按 sldIdLst 顺序返回幻灯片 part 路径。"""
    xml = pkg.get_text(PRESENTATION_PART)
    if xml is None:
        raise PackageStructureError(f"缺少 {PRESENTATION_PART}")
    rels = {r.id: r for r in parse_relationships(pkg.get_text(rels_path_for(PRESENTATION_PART)) or "<Relationships/>")}
    order = []
    for tag in _SLD_ID_TAG_RE.findall(xml):
        m = _R_ID_RE.search(tag)
        rel = rels.get(m.group(1)) if m else None
        order.append(resolve_target(PRESENTATION_PART, rel.target) if rel else "")
    return order


def check_package(pkg: OoxmlPackage) -> list[str]:
    """汇总所有问题，返回可读的描述列表；为空表示通过。"""
    problems = []
    for owner, target in find_dangling_relationships(pkg):
        problems.append(f"悬空引用：{owner or '/'} → {target}")
    for path in find_missing_content_types(pkg):
        problems.append(f"缺少内容类型：{path}")
    for key in find_duplicate_content_types(pkg):
        problems.append(f"内容类型重复：{key}")
    for n in find_duplicate_ids(pkg):
        problems.append(f"ID 重复：{n}")
    for path in slide_order(pkg):
        if not path or not pkg.has(path):
            problems.append(f"幻灯片列表引用了不存在的页：{path or '(无关系)'}")
    return problems
