"""[Content_Types].xml 工作副本：按字符串插入维护 Default/Override。

不经过 DOM 重新序列化，原文件中未改动的部分逐字节保留。
"""

from __future__ import annotations

import posixpath
import re
from typing import Optional

from .package import PackageStructureError

CT_SLIDE = "application/vnd.openxmlformats-officedocument.presentationml.slide+xml"
CT_SLIDE_LAYOUT = "application/vnd.openxmlformats-officedocument.presentationml.slideLayout+xml"
CT_SLIDE_MASTER = "application/vnd.openxmlformats-officedocument.presentationml.slideMaster+xml"
CT_THEME = "application/vnd.openxmlformats-officedocument.theme+xml"
CT_NOTES_SLIDE = "application/vnd.openxmlformats-officedocument.presentationml.notesSlide+xml"
CT_NOTES_MASTER = "application/vnd.openxmlformats-officedocument.presentationml.notesMaster+xml"

# 按目录推断 override 类型
FOLDER_CONTENT_TYPES = {
    "ppt/slides/": CT_SLIDE,
    "ppt/slideLayouts/": CT_SLIDE_LAYOUT,
    "ppt/slideMasters/": CT_SLIDE_MASTER,
    "ppt/theme/": CT_THEME,
    "ppt/notesSlides/": CT_NOTES_SLIDE,
    "ppt/notesMasters/": CT_NOTES_MASTER,
}

OCTET_STREAM = "application/octet-stream"

# 媒体扩展名 → Default 类型
MEDIA_CONTENT_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "tif": "image/tiff",
    "tiff": "image/tiff",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "emf": "image/x-emf",
    "wmf": "image/x-wmf",
    "wdp": "image/vnd.ms-photo",
    "mp4": "video/mp4",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "bin": "application/vnd.openxmlformats-officedocument.oleObject",
}

_ATTR = r"""\s{name}\s*=\s*(?:"([^"]*)"|'([^']*)')"""
_OVERRIDE_RE = re.compile(r"<Override\b[^>]*>", re.IGNORECASE)
_DEFAULT_RE = re.compile(r"<Default\b[^>]*>", re.IGNORECASE)
_PART_NAME_RE = re.compile(_ATTR.format(name="PartName"))
_EXTENSION_RE = re.compile(_ATTR.format(name="Extension"))
_CONTENT_TYPE_RE = re.compile(_ATTR.format(name="ContentType"))


def _attr(pattern: re.Pattern, tag: str) -> Optional[str]:
    m = pattern.search(tag)
    if not m:
        return None
    return m.group(1) if m.group(1) is not None else m.group(2)


def media_type_for(extension: str) -> str:
    return MEDIA_CONTENT_TYPES.get(extension.lstrip(".").lower(), OCTET_STREAM)


def override_type_for(part_path: str) -> Optional[str]:
    for folder, ctype in FOLDER_CONTENT_TYPES.items():
        if part_path.startswith(folder) and part_path.endswith(".xml") and "/_rels/" not in part_path:
            return ctype
    return None


class ContentTypes:
    """[Content_Types].xml 文本的可变副本。"""

    def __init__(self, xml: str):
        if "</Types>" not in xml:
            raise PackageStructureError("[Content_Types].xml 缺少 </Types>")
        self.xml = xml

    # ── 查询 ──

    def overrides(self) -> dict[str, str]:
        """PartName(小写) → ContentType"""
        result = {}
        for tag in _OVERRIDE_RE.findall(self.xml):
            name = _attr(_PART_NAME_RE, tag)
            if name:
                result[name.lower()] = _attr(_CONTENT_TYPE_RE, tag) or ""
        return result

    def defaults(self) -> dict[str, str]:
        """Extension(小写) → ContentType"""
        result = {}
        for tag in _DEFAULT_RE.findall(self.xml):
            ext = _attr(_EXTENSION_RE, tag)
            if ext:
                result[ext.lower()] = _attr(_CONTENT_TYPE_RE, tag) or ""
        return result

    def duplicates(self) -> list[str]:
        """重复声明的 PartName / Extension（小写）。"""
        seen, dups = set(), []
        for pattern, attr in ((_OVERRIDE_RE, _PART_NAME_RE), (_DEFAULT_RE, _EXTENSION_RE)):
            for tag in pattern.findall(self.xml):
                key = (_attr(attr, tag) or "").lower()
                if key in seen:
                    dups.append(key)
                seen.add(key)
        return dups

    def has_override(self, part_name: str) -> bool:
        return _part_name(part_name).lower() in self.overrides()

    def has_default(self, extension: str) -> bool:
        return extension.lstrip(".").lower() in self.defaults()

    def content_type_of(self, part_path: str) -> Optional[str]:
        """part 的有效类型：先查 Override，再按扩展名查 Default。"""
        ctype = self.overrides().get(_part_name(part_path).lower())
        if ctype:
            return ctype
        ext = posixpath.splitext(part_path)[1].lstrip(".").lower()
        return self.defaults().get(ext)

    # ── 修改 ──

    def ensure_override(self, part_name: str, content_type: str) -> bool:
        """同名 PartName 不存在时追加 Override。返回是否新增。"""
        name = _part_name(part_name)
        if self.has_override(name):
            return False
        entry = f'<Override PartName="{name}" ContentType="{content_type}"/>'
        idx = self.xml.rfind("</Types>")
        self.xml = f"{self.xml[:idx]}{entry}{self.xml[idx:]}"
        return True

    def ensure_default(self, extension: str, content_type: str) -> bool:
        """扩展名未声明时追加 Default（放在第一个 Override 之前）。"""
        ext = extension.lstrip(".").lower()
        if not ext or self.has_default(ext):
            return False
        entry = f'<Default Extension="{ext}" ContentType="{content_type}"/>'
        m = _OVERRIDE_RE.search(self.xml)
        idx = m.start() if m else self.xml.rfind("</Types>")
        self.xml = f"{self.xml[:idx]}{entry}{self.xml[idx:]}"
        return True


def _part_name(path: str) -> str:
    return path if path.startswith("/") else f"/{path}"
