"""OOXML 包访问层：zip 容器内 part 的文本/二进制读写。

PPTX 本质上是一个 zip，每个条目就是一个 part（XML 或媒体文件）。
这里只负责 part 的读写与确定性的重新打包，不做任何 XML 层面的解析。
"""

from __future__ import annotations

import re
import zipfile
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

CONTENT_TYPES_PART = "[Content_Types].xml"
PRESENTATION_PART = "ppt/presentation.xml"
PRESENTATION_RELS_PART = "ppt/_rels/presentation.xml.rels"

# 固定时间戳，保证相同输入重复打包得到相同字节
_FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)
_COMPRESS_LEVEL = 6


class PackageStructureError(RuntimeError):
    """目标/模板包缺少必要结构，当前输出文件无法继续生成。"""


class OoxmlPackage:
    """内存中的可变 OOXML 包: part 路径 → 文本或字节。"""

    def __init__(self, parts: Optional[dict[str, Union[str, bytes]]] = None):
        self._parts: dict[str, Union[str, bytes]] = dict(parts or {})

    @classmethod
    def open(cls, data: bytes) -> "OoxmlPackage":
        """从 zip 字节加载。无法解析的 zip 直接报错。"""
        try:
            with zipfile.ZipFile(BytesIO(data), "r") as z:
                parts = {
                    info.filename: z.read(info.filename)
                    for info in z.infolist()
                    if not info.is_dir()
                }
        except zipfile.BadZipFile as e:
            raise PackageStructureError(f"无法解析 PPTX 压缩包：{e}") from e
        return cls(parts)

    @classmethod
    def from_path(cls, path: Path) -> "OoxmlPackage":
        return cls.open(Path(path).read_bytes())

    # ── 读 ──────────────────────────────────────────────────────────

    def has(self, path: str) -> bool:
        return path in self._parts

    def get_text(self, path: str) -> Optional[str]:
        """以 UTF-8 文本读取 part，不存在时返回 None。"""
        value = self._parts.get(path)
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8-sig")
        return value

    def get_binary(self, path: str) -> Optional[bytes]:
        """以字节读取 part，不存在时返回 None。"""
        value = self._parts.get(path)
        if value is None:
            return None
        if isinstance(value, str):
            return value.encode("utf-8")
        return value

    def list_matching(self, pattern: Union[str, re.Pattern]) -> list[str]:
        """返回路径与正则完整匹配的 part 列表（忽略大小写）。"""
        pat = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern, re.IGNORECASE)
        return [p for p in self._parts if pat.fullmatch(p)]

    @property
    def part_names(self) -> list[str]:
        return list(self._parts)

    # ── 写 ──────────────────────────────────────────────────────────

    def put(self, path: str, content: Union[str, bytes]) -> None:
        """写入 part。已存在则直接覆盖，后写入者生效。"""
        self._parts[path] = content

    def delete(self, path: str) -> None:
        self._parts.pop(path, None)

    def serialize(self) -> bytes:
        """重新打包为 zip 字节。[Content_Types].xml 固定为第一个条目。"""
        names = list(self._parts)
        if CONTENT_TYPES_PART in self._parts:
            names.remove(CONTENT_TYPES_PART)
            names.insert(0, CONTENT_TYPES_PART)

        buf = BytesIO()
        with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED, compresslevel=_COMPRESS_LEVEL) as z:
            for name in names:
                info = zipfile.ZipInfo(name, date_time=_FIXED_DATE_TIME)
                info.compress_type = zipfile.ZIP_DEFLATED
                info.external_attr = 0o644 << 16
                z.writestr(info, self.get_binary(name), compresslevel=_COMPRESS_LEVEL)
        return buf.getvalue()

    def save(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.serialize())
        return path
