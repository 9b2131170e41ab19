"""图片占位符：图片载荷解码、图片框等比适配、<p:pic> 生成。"""

from __future__ import annotations

import base64
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from pptx.parts.image import Image

from ..pptx_injector.content_types import OCTET_STREAM, media_type_for

_DATA_URI_RE = re.compile(r"^data:image/([\w.+-]+);base64,(.*)$", re.S | re.I)
_PIC_RE = re.compile(r"<p:pic\b.*?</p:pic>", re.S)
_EMBED_RE = re.compile(r"""\br:embed\s*=\s*["']([^"']+)["']""")
_XFRM_RE = re.compile(r"<a:xfrm\b[^>]*>.*?</a:xfrm>", re.S)
_OFF_RE = re.compile(r"""<a:off\b[^>]*?\bx\s*=\s*["'](-?\d+)["'][^>]*?\by\s*=\s*["'](-?\d+)["'][^>]*/>""")
_EXT_RE = re.compile(r"""<a:ext\b[^>]*?\bcx\s*=\s*["'](\d+)["'][^>]*?\bcy\s*=\s*["'](\d+)["'][^>]*/>""")
_SHAPE_ID_RE = re.compile(r"""<p:cNvPr\b[^>]*?\bid\s*=\s*["'](\d+)["']""")
_SLD_SZ_RE = re.compile(r"""<(?:\w+:)?sldSz\b[^>]*?\bcx\s*=\s*["'](\d+)["'][^>]*?\bcy\s*=\s*["'](\d+)["']""")
_TITLE_SP_RE = re.compile(r"<p:sp\b(?:(?!</p:sp>).)*?<p:ph\b[^>]*type=[\"'](?:title|ctrTitle)[\"'].*?</p:sp>", re.S)
_SP_TREE_END = "</p:spTree>"

# 子类型名 → 扩展名
_SUBTYPE_EXT = {"jpeg": "jpeg", "jpg": "jpg", "svg+xml": "svg", "x-emf": "emf", "x-wmf": "wmf"}

DEFAULT_SLIDE_SIZE = (12192000, 6858000)  # 16:9


@dataclass
class ImagePayload:
    data: bytes
    ext: str
    content_type: str


@dataclass
class PictureFrame:
    """幻灯片 XML 中一个 <p:pic> 的位置与图片框。"""
    start: int
    end: int
    embed_rid: str
    x: int
    y: int
    cx: int
    cy: int

    @property
    def area(self) -> int:
        return self.cx * self.cy


def decode_image(payload: Union[bytes, str, Path, ImagePayload]) -> ImagePayload:
    """data-URI 字符串 / 文件路径 / 原始字节 → ImagePayload。"""
    if isinstance(payload, ImagePayload):
        return payload

    if isinstance(payload, bytes):
        image = Image.from_blob(payload)
        return ImagePayload(data=payload, ext=image.ext, content_type=image.content_type)

    if isinstance(payload, str):
        m = _DATA_URI_RE.match(payload.strip())
        if m:
            subtype = m.group(1).lower()
            ext = _SUBTYPE_EXT.get(subtype, subtype)
            data = base64.b64decode(m.group(2))
            content_type = media_type_for(ext)
            if content_type == OCTET_STREAM:
                content_type = f"image/{subtype}"
            return ImagePayload(data=data, ext=ext, content_type=content_type)
        payload = Path(payload)

    path = Path(payload)
    if not path.is_file():
        raise FileNotFoundError(f"图片文件不存在：{path}")
    ext = path.suffix.lstrip(".").lower() or "png"
    return ImagePayload(data=path.read_bytes(), ext=ext, content_type=media_type_for(ext))


def image_size(data: bytes) -> Optional[tuple[int, int]]:
    """像素尺寸；无法识别的格式（如 emf）返回 None。"""
    try:
        return Image.from_blob(data).size
    except (OSError, ValueError):
        return None


def slide_size(presentation_xml: str) -> tuple[int, int]:
    m = _SLD_SZ_RE.search(presentation_xml or "")
    if not m:
        return DEFAULT_SLIDE_SIZE
    return int(m.group(1)), int(m.group(2))


def find_pictures(slide_xml: str) -> list[PictureFrame]:
    frames = []
    for m in _PIC_RE.finditer(slide_xml):
        pic = m.group(0)
        embed = _EMBED_RE.search(pic)
        xfrm = _XFRM_RE.search(pic)
        if not embed or not xfrm:
            continue
        off = _OFF_RE.search(xfrm.group(0))
        ext = _EXT_RE.search(xfrm.group(0))
        if not off or not ext:
            continue
        frames.append(PictureFrame(
            start=m.start(),
            end=m.end(),
            embed_rid=embed.group(1),
            x=int(off.group(1)),
            y=int(off.group(2)),
            cx=int(ext.group(1)),
            cy=int(ext.group(2)),
        ))
    return frames


def find_largest_picture(slide_xml: str, rids: Optional[set[str]] = None) -> Optional[PictureFrame]:
    """面积最大的图片框。给定 rids 时只考虑引用其中之一的图片。"""
    frames = [f for f in find_pictures(slide_xml) if rids is None or f.embed_rid in rids]
    if not frames:
        return None
    return max(frames, key=lambda f: f.area)


def fit_contain(x: int, y: int, cx: int, cy: int, size: Optional[tuple[int, int]]) -> tuple[int, int, int, int]:
    """按图片宽高比缩进 (x, y, cx, cy) 框内并居中。"""
    if not size or not size[0] or not size[1] or not cx or not cy:
        return x, y, cx, cy
    img_w, img_h = size
    scale = min(cx / img_w, cy / img_h)
    new_cx = int(img_w * scale)
    new_cy = int(img_h * scale)
    return x + (cx - new_cx) // 2, y + (cy - new_cy) // 2, new_cx, new_cy


def set_picture_frame(slide_xml: str, frame: PictureFrame, x: int, y: int, cx: int, cy: int) -> str:
    """只改写该 <p:pic> 的 xfrm 偏移与尺寸。"""
    pic = slide_xml[frame.start:frame.end]
    xfrm = _XFRM_RE.search(pic)
    block = xfrm.group(0)
    block = _OFF_RE.sub(f'<a:off x="{x}" y="{y}"/>', block, count=1)
    block = _EXT_RE.sub(f'<a:ext cx="{cx}" cy="{cy}"/>', block, count=1)
    pic = f"{pic[:xfrm.start()]}{block}{pic[xfrm.end():]}"
    return f"{slide_xml[:frame.start]}{pic}{slide_xml[frame.end:]}"


def next_shape_id(slide_xml: str) -> int:
    return max((int(n) for n in _SHAPE_ID_RE.findall(slide_xml)), default=1) + 1


def content_area(slide_xml: str, slide_cx: int, slide_cy: int) -> tuple[int, int, int, int]:
    """标题下方的内容区。标题框没有显式位置时按页面高度的 18% 估算。"""
    margin_x = slide_cx // 20
    margin_bottom = slide_cy // 20
    top = slide_cy * 18 // 100

    title = _TITLE_SP_RE.search(slide_xml)
    if title:
        xfrm = _XFRM_RE.search(title.group(0))
        off = _OFF_RE.search(xfrm.group(0)) if xfrm else None
        ext = _EXT_RE.search(xfrm.group(0)) if xfrm else None
        if off and ext:
            top = int(off.group(2)) + int(ext.group(2)) + slide_cy // 50

    height = max(slide_cy - top - margin_bottom, slide_cy // 4)
    return margin_x, top, slide_cx - 2 * margin_x, height


def build_picture_xml(shape_id: int, rid: str, name: str, x: int, y: int, cx: int, cy: int) -> str:
    return (
        f'<p:pic><p:nvPicPr><p:cNvPr id="{shape_id}" name="{name}"/>'
        f'<p:cNvPicPr><a:picLocks noChangeAspect="1"/></p:cNvPicPr><p:nvPr/></p:nvPicPr>'
        f'<p:blipFill><a:blip r:embed="{rid}"/><a:stretch><a:fillRect/></a:stretch></p:blipFill>'
        f'<p:spPr><a:xfrm><a:off x="{x}" y="{y}"/><a:ext cx="{cx}" cy="{cy}"/></a:xfrm>'
        f'<a:prstGeom prst="rect"><a:avLst/></a:prstGeom></p:spPr></p:pic>'
    )


def append_picture(slide_xml: str, picture_xml: str) -> str:
    """把 <p:pic> 追加到形状树末尾。"""
    idx = slide_xml.rfind(_SP_TREE_END)
    if idx < 0:
        raise ValueError("幻灯片缺少 <p:spTree>")
    return f"{slide_xml[:idx]}{picture_xml}{slide_xml[idx:]}"
