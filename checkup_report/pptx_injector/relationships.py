"""OOXML 关系 (.rels) 解析/序列化 + part 路径解析。"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from typing import Optional

from lxml import etree

from .package import PackageStructureError

_NS_REL = "http://schemas.openxmlformats.org/package/2006/relationships"
_RT = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"

REL_SLIDE = f"{_RT}/slide"
REL_SLIDE_LAYOUT = f"{_RT}/slideLayout"
REL_SLIDE_MASTER = f"{_RT}/slideMaster"
REL_THEME = f"{_RT}/theme"
REL_IMAGE = f"{_RT}/image"
REL_NOTES_SLIDE = f"{_RT}/notesSlide"
REL_NOTES_MASTER = f"{_RT}/notesMaster"

EXTERNAL = "External"


@dataclass
class Relationship:
    id: str
    type: str
    target: str
    target_mode: Optional[str] = None

    @property
    def is_external(self) -> bool:
        return (self.target_mode or "").lower() == EXTERNAL.lower()

    def type_is(self, rel_type: str) -> bool:
        """按类型 URI 末段比较，兼容 strict 命名空间 (purl.oclc.org) 的模板。"""
        return self.type == rel_type or self.type.rsplit("/", 1)[-1] == rel_type.rsplit("/", 1)[-1]


def serialize_xml(root) -> bytes:
    """lxml 元素 → 带 standalone 声明的 UTF-8 字节。"""
    raw = etree.tostring(root, xml_declaration=True, encoding="UTF-8", standalone=True)
    # lxml 输出单引号声明，PowerPoint 期望双引号
    return raw.replace(
        b"<?xml version='1.0' encoding='UTF-8' standalone='yes'?>",
        b'<?xml version="1.0" encoding="UTF-8" standalone="yes"?>',
        1,
    )


def parse_relationships(xml: str) -> list[Relationship]:
    """解析 .rels 文本。属性顺序与引号风格不限。"""
    try:
        root = etree.fromstring(xml.encode("utf-8"))
    except etree.XMLSyntaxError as e:
        raise PackageStructureError(f"关系文件无法解析：{e}") from e

    rels = []
    for el in root:
        if not isinstance(el.tag, str) or etree.QName(el).localname != "Relationship":
            continue
        rels.append(Relationship(
            id=el.get("Id", ""),
            type=el.get("Type", ""),
            target=el.get("Target", ""),
            target_mode=el.get("TargetMode"),
        ))
    return rels


def build_relationships_xml(rels: list[Relationship]) -> str:
    """关系列表 → .rels 文本。空列表也输出 <Relationships> 根元素。"""
    root = etree.Element(f"{{{_NS_REL}}}Relationships", nsmap={None: _NS_REL})
    for rel in rels:
        el = etree.SubElement(root, f"{{{_NS_REL}}}Relationship")
        el.set("Id", rel.id)
        el.set("Type", rel.type)
        el.set("Target", rel.target)
        if rel.target_mode:
            el.set("TargetMode", rel.target_mode)
    return serialize_xml(root).decode("utf-8")


def rels_path_for(part_path: str) -> str:
    """ppt/slides/slide1.xml → ppt/slides/_rels/slide1.xml.rels"""
    directory, name = posixpath.split(part_path)
    return posixpath.join(directory, "_rels", f"{name}.rels")


def resolve_target(from_part: str, target: str) -> str:
    """把相对 from_part 所在目录的 Target 解析成包内绝对路径（无前导 /）。"""
    if target.startswith("/"):
        return posixpath.normpath(target).lstrip("/")
    base_dir = posixpath.dirname(from_part)
    return posixpath.normpath(posixpath.join(base_dir, target))


def relative_target(from_part: str, to_part: str) -> str:
    """计算 from_part 指向 to_part 的相对 Target，始终使用正斜杠。"""
    rel = posixpath.relpath(to_part, posixpath.dirname(from_part) or ".")
    if rel.startswith("./"):
        rel = rel[2:]
    return rel
