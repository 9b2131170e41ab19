"""幻灯片 XML 占位符替换引擎：ABC 接口 + 实现。

只改动 <a:t>…</a:t> 文本体，XML 结构其余部分逐字节保留。
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Optional, Union
from xml.sax.saxutils import escape

# 占位符内外允许的空白：普通空白、NBSP 字符及其实体写法
_WS = r"(?:\s|\u00a0|&nbsp;|&#160;|&#xA0;)*"

# <a:t> 或带属性的 <a:t ...>，不会匹配 <a:tab>/<a:tbl> 与自闭合的 <a:t/>
_T_RE = re.compile(r"(<a:t(?:\s[^>]*)?(?<!/)>)(.*?)(</a:t>)", re.S)
# 非自闭合段落；不跨越下一个 <a:p> 开始标签（<a:p/> 常见于空文本框）
_P_RE = re.compile(r"<a:p(?:\s[^>]*)?(?<!/)>(?:(?!<a:p[\s/>]).)*?</a:p>", re.S)
_BRACES_RE = re.compile(r"\{\{([^{}]*)\}\}")

# XML 1.0 不允许的控制字符（保留 \t \n \r）
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")

# 值为空时仍替换（占位符消失）的字段
EMPTY_ALLOWED_KEYS = frozenset({"性别", "年龄"})

# 多行值的行分隔标记；值经过控制字符清理，不会自带此字符
_LINE_MARK = "\x00"


def sanitize_text(text: str) -> str:
    """去掉 XML 1.0 禁止的控制字符，统一换行符。"""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return _CONTROL_RE.sub("", text)


def escape_xml(text: str) -> str:
    return escape(text, {'"': "&quot;", "'": "&apos;"})


def format_cn_date(value: Union[date, datetime, str, None] = None) -> str:
    """YYYY年MM月DD日。无法解析的字符串原样返回。"""
    if value is None:
        value = date.today()
    if isinstance(value, str):
        text = value.strip()
        for fmt in ("%Y-%m-%d", "%Y/%m/%d", "%Y.%m.%d", "%Y%m%d", "%Y-%m-%d %H:%M:%S"):
            try:
                value = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
        else:
            return text
    return f"{value.year}年{value.month:02d}月{value.day:02d}日"


class SlideTextReplacer(ABC):
    """幻灯片 XML 文本占位符替换的抽象接口。"""

    @abstractmethod
    def replace(self, slide_xml: str, values: dict[str, Optional[str]]) -> str:
        """按 key 顺序替换 {{key}} / [key] / 整段 key 三种写法。"""

    @abstractmethod
    def remove_marker(self, slide_xml: str, key: str) -> str:
        """删掉已经处理过的标记占位符（如 {{影像}}）。"""

    @abstractmethod
    def find_placeholders(self, slide_xml: str) -> list[str]:
        """返回文本中残留的 {{…}} 占位符名。"""


class XmlTextReplacer(SlideTextReplacer):
    """基于正则的文本区替换实现。"""

    def replace(self, slide_xml: str, values: dict[str, Optional[str]]) -> str:
        xml = self._merge_split_placeholders(slide_xml)
        multiline = False
        for key, value in values.items():
            if value is None:
                continue
            value = sanitize_text(str(value))
            if not value and key not in EMPTY_ALLOWED_KEYS:
                # 留着占位符，提示缺数据
                continue
            lines = value.split("\n")
            if len(lines) > 1:
                multiline = True
            replacement = _LINE_MARK.join(escape_xml(line) for line in lines)
            xml = self._substitute(xml, key, replacement)

        if multiline:
            xml = _P_RE.sub(lambda m: self._expand_paragraph(m.group(0)), xml)
        return xml

    def remove_marker(self, slide_xml: str, key: str) -> str:
        xml = self._merge_split_placeholders(slide_xml)
        return self._substitute(xml, key, "", bare=False)

    def find_placeholders(self, slide_xml: str) -> list[str]:
        found = []
        for paragraph in _P_RE.findall(slide_xml):
            text = "".join(m.group(2) for m in _T_RE.finditer(paragraph))
            for name in _BRACES_RE.findall(text):
                found.append(re.sub(_WS, "", name) or name)
        return found

    # ── 内部 ──

    @staticmethod
    def _substitute(xml: str, key: str, replacement: str, bare: bool = True) -> str:
        key_pattern = re.escape(escape_xml(key))
        braces = re.compile(rf"\{{\{{{_WS}{key_pattern}{_WS}\}}\}}{_WS}", re.I)
        brackets = re.compile(rf"\[{_WS}{key_pattern}{_WS}\]", re.I)
        whole = re.compile(rf"^{_WS}{key_pattern}{_WS}$", re.I)

        def on_text(m: re.Match) -> str:
            body = braces.sub(lambda _: replacement, m.group(2))
            body = brackets.sub(lambda _: replacement, body)
            if bare:
                body = whole.sub(lambda _: replacement, body)
            return f"{m.group(1)}{body}{m.group(3)}"

        return _T_RE.sub(on_text, xml)

    @staticmethod
    def _merge_split_placeholders(xml: str) -> str:
        """PowerPoint 会把 {{姓名}} 拆成 "{{姓", "名}}" 等多个 run。

        以段落为单位拼出全文，若其中的占位符跨了 run，就把全文放进第一个 run、
        其余 run 清空（保留第一个 run 的格式）。
        """

        def on_paragraph(m: re.Match) -> str:
            paragraph = m.group(0)
            runs = list(_T_RE.finditer(paragraph))
            if len(runs) < 2:
                return paragraph
            full = "".join(r.group(2) for r in runs)
            whole_count = len(_BRACES_RE.findall(full))
            if whole_count == 0:
                return paragraph
            if whole_count == sum(len(_BRACES_RE.findall(r.group(2))) for r in runs):
                return paragraph

            bodies = iter([full] + [""] * (len(runs) - 1))
            return _T_RE.sub(lambda t: f"{t.group(1)}{next(bodies)}{t.group(3)}", paragraph)

        return _P_RE.sub(on_paragraph, xml)

    @staticmethod
    def _expand_paragraph(paragraph: str) -> str:
        """含多行值的段落复制成每行一段，格式照旧。

        标记所在 run 之前的文本留在第一行，之后的文本放到最后一行。
        """
        bodies = [m.group(2) for m in _T_RE.finditer(paragraph)]
        marked = next((i for i, b in enumerate(bodies) if _LINE_MARK in b), None)
        if marked is None:
            return paragraph

        segments = bodies[marked].split(_LINE_MARK)
        last = len(segments) - 1
        out = []
        for line_no, segment in enumerate(segments):
            texts = []
            for i, body in enumerate(bodies):
                if i < marked:
                    texts.append(body if line_no == 0 else "")
                elif i == marked:
                    texts.append(segment)
                else:
                    texts.append(body.replace(_LINE_MARK, "") if line_no == last else "")
            it = iter(texts)
            out.append(_T_RE.sub(lambda t: f"{t.group(1)}{next(it)}{t.group(3)}", paragraph))
        return "".join(out)
