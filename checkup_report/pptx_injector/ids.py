"""ID/编号分配器：保证新分配的编号与目标包内已有编号、以及本次已分配的编号都不冲突。

目标文件可能经过多次编辑（包括本工具此前的运行），编号中常有空洞或很大的值。
单纯自增而不做冲突检查，就会悄悄复用 ID，PowerPoint 打开时提示“需要修复”。
"""

from __future__ import annotations

import re

from .package import OoxmlPackage

MIN_SLIDE_ID = 256          # 分配结果严格大于该值
MAX_SLIDE_ID = 2147483647
MIN_MASTER_ID = 2147483648  # sldMasterId 与 sldLayoutId 共用此 ID 空间
MAX_MASTER_ID = 4294967295

SLIDE_ID_RE = re.compile(r"""<(?:\w+:)?sldId\b[^>]*?(?<![:\w])id\s*=\s*["'](\d+)["']""")
MASTER_ID_RE = re.compile(r"""<(?:\w+:)?sldMasterId\b[^>]*?(?<![:\w])id\s*=\s*["'](\d+)["']""")
LAYOUT_ID_RE = re.compile(r"""<(?:\w+:)?sldLayoutId\b[^>]*?(?<![:\w])id\s*=\s*["'](\d+)["']""")
_REL_ID_RE = re.compile(r"""\bId\s*=\s*["']rId(\d+)["']""")

# 编号类型 → (文件名正则, 路径模板)
_FILE_KINDS = {
    "slide": (r"ppt/slides/slide(\d+)\.xml", "ppt/slides/slide{}.xml"),
    "layout": (r"ppt/slideLayouts/slideLayout(\d+)\.xml", "ppt/slideLayouts/slideLayout{}.xml"),
    "master": (r"ppt/slideMasters/slideMaster(\d+)\.xml", "ppt/slideMasters/slideMaster{}.xml"),
    "theme": (r"ppt/theme/theme(\d+)\.xml", "ppt/theme/theme{}.xml"),
    "notes_slide": (r"ppt/notesSlides/notesSlide(\d+)\.xml", "ppt/notesSlides/notesSlide{}.xml"),
    "notes_master": (r"ppt/notesMasters/notesMaster(\d+)\.xml", "ppt/notesMasters/notesMaster{}.xml"),
}
_MEDIA_RE = re.compile(r"ppt/media/[^/]*?(\d+)\.[^./]+", re.IGNORECASE)


def scan_ids(pattern: re.Pattern, xml: str) -> set[int]:
    return {int(m) for m in pattern.findall(xml or "")}


class IdAllocator:
    """按类型维护的单调计数器 + 已存在编号集合。"""

    def __init__(self, package: OoxmlPackage, presentation_xml: str, presentation_rels: str):
        self._package = package

        self.slide_ids = scan_ids(SLIDE_ID_RE, presentation_xml)
        self.rel_ids = scan_ids(_REL_ID_RE, presentation_rels)
        # 母版 ID 与所有母版内的版式 ID 共享同一空间
        self.master_ids = scan_ids(MASTER_ID_RE, presentation_xml)
        for path in package.list_matching(_FILE_KINDS["master"][0]):
            self.master_ids |= scan_ids(LAYOUT_ID_RE, package.get_text(path))

        self._next_slide_id = max(self.slide_ids | {MIN_SLIDE_ID}) + 1
        self._next_rel_id = max(self.rel_ids, default=0) + 1
        self._next_master_id = max(self.master_ids | {MIN_MASTER_ID - 1}) + 1

        self.file_numbers: dict[str, set[int]] = {}
        self._next_file: dict[str, int] = {}
        for kind, (pattern, _) in _FILE_KINDS.items():
            pat = re.compile(pattern, re.IGNORECASE)
            nums = {int(pat.fullmatch(p).group(1)) for p in package.list_matching(pat)}
            self.file_numbers[kind] = nums
            self._next_file[kind] = max(nums, default=0) + 1

        media_nums = {
            int(m.group(1)) for p in package.part_names if (m := _MEDIA_RE.fullmatch(p))
        }
        self.media_seqs = media_nums
        self._next_media = max(media_nums, default=0) + 1

    # ── 文件编号 ──

    def _file_number(self, kind: str) -> int:
        template = _FILE_KINDS[kind][1]
        used = self.file_numbers[kind]
        n = self._next_file[kind]
        while n in used or self._package.has(template.format(n)):
            n += 1
        used.add(n)
        self._next_file[kind] = n + 1
        return n

    def next_slide_number(self) -> int:
        return self._file_number("slide")

    def next_layout_number(self) -> int:
        return self._file_number("layout")

    def next_master_number(self) -> int:
        return self._file_number("master")

    def next_theme_number(self) -> int:
        return self._file_number("theme")

    def next_notes_slide_number(self) -> int:
        return self._file_number("notes_slide")

    def next_notes_master_number(self) -> int:
        return self._file_number("notes_master")

    def next_media_seq(self) -> int:
        n = self._next_media
        while n in self.media_seqs:
            n += 1
        self.media_seqs.add(n)
        self._next_media = n + 1
        return n

    def new_media_path(self, stem: str, ext: str) -> str:
        """ppt/media/<stem>_<n>.<ext>，同名文件已存在时继续取号。"""
        ext = ext.lstrip(".").lower() or "bin"
        while True:
            path = f"ppt/media/{stem}_{self.next_media_seq()}.{ext}"
            if not self._package.has(path):
                return path

    # ── presentation 级 ID ──

    def next_slide_id(self) -> int:
        candidate = self._next_slide_id
        while candidate <= MIN_SLIDE_ID or candidate in self.slide_ids:
            candidate += 1
        if candidate > MAX_SLIDE_ID:
            # 上限之后回头找空洞
            candidate = MIN_SLIDE_ID + 1
            while candidate in self.slide_ids:
                candidate += 1
            if candidate > MAX_SLIDE_ID:
                raise OverflowError("幻灯片 ID 已耗尽")
        else:
            self._next_slide_id = candidate + 1
        self.slide_ids.add(candidate)
        return candidate

    def next_rel_id(self) -> int:
        candidate = self._next_rel_id
        while candidate in self.rel_ids:
            candidate += 1
        self.rel_ids.add(candidate)
        self._next_rel_id = candidate + 1
        return candidate

    def next_master_id(self) -> int:
        candidate = self._next_master_id
        while candidate < MIN_MASTER_ID or candidate in self.master_ids:
            candidate += 1
        if candidate > MAX_MASTER_ID:
            raise OverflowError("母版/版式 ID 已耗尽")
        self.master_ids.add(candidate)
        self._next_master_id = candidate + 1
        return candidate

    # 版式 ID 与母版 ID 同一空间
    next_layout_id = next_master_id
