"""幻灯片注入引擎：ABC 接口 + zip 级实现。

模板字节 + 输出字节 + 注入请求列表 → 新的输出字节。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from .injector import ImageSource, TemplateSlideInjector
from .package import OoxmlPackage
from .patcher import finalize
from .state import END, RunState


@dataclass
class SlideRequest:
    template_slide: int                                  # 模板中的页号 (slideN.xml 的 N)
    position: str = END                                  # start / middle / end
    placeholder_values: Optional[dict[str, Optional[str]]] = None
    image: Optional[ImageSource] = None


class SlideInjectionEngine(ABC):
    """幻灯片注入的抽象接口。"""

    @abstractmethod
    def inject(self, template: bytes, output: bytes, requests: list[SlideRequest]) -> bytes:
        """按顺序执行 requests，返回序列化后的输出包。"""


class ZipSlideInjectionEngine(SlideInjectionEngine):
    """OoxmlPackage 上的字符串级注入实现。"""

    def __init__(self, injector: Optional[TemplateSlideInjector] = None):
        self.injector = injector or TemplateSlideInjector()

    def inject(self, template: bytes, output: bytes, requests: list[SlideRequest]) -> bytes:
        state = self.run(OoxmlPackage.open(template), OoxmlPackage.open(output), requests)
        return state.output.serialize()

    def run(self, template: OoxmlPackage, output: OoxmlPackage, requests: list[SlideRequest]) -> RunState:
        """注入 + finalize，返回完成的 RunState（输出包已原地修改）。"""
        state = RunState.begin(template, output)
        for req in requests:
            self.injector.inject_slide(
                state,
                req.template_slide,
                req.position,
                placeholder_values=req.placeholder_values,
                image=req.image,
            )
        finalize(state)
        return state
