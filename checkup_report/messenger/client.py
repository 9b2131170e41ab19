"""企业微信消息接口客户端：ABC 接口 + httpx 实现。"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional, TypeVar

import httpx

from .. import config
from .models import DeliveryResponse, LookupResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MessengerClient(ABC):
    """证件号 → 账号查询，以及向账号发送文件。"""

    @abstractmethod
    def lookup(self, id_number: str) -> LookupResponse:
        """查询接口的原始响应。"""

    @abstractmethod
    def deliver(self, account_id: str, data: bytes, filename: str) -> DeliveryResponse:
        """发送接口的原始响应。"""

    # --- 便捷方法 ---

    def lookup_id(self, id_number: str) -> str:
        """返回账号 ID；业务失败时抛 LookupError。"""
        resp = self.lookup(id_number)
        if not resp.is_success:
            raise LookupError(f"企信ID获取失败：{resp.return_message or '未知错误'}")
        return str(resp.return_data)

    def deliver_file(self, account_id: str, data: bytes, filename: str) -> DeliveryResponse:
        """发送文件；业务失败时抛 RuntimeError。"""
        resp = self.deliver(account_id, data, filename)
        if not resp.is_success:
            raise RuntimeError(f"文件发送失败：{resp.message or '未知错误'}")
        return resp


class MessengerHttpClient(MessengerClient):
    """httpx 实现。网络错误和 5xx 按线性退避重试。"""

    def __init__(
        self,
        lookup_url: Optional[str] = None,
        delivery_url: Optional[str] = None,
        timeout: float = config.HTTP_TIMEOUT_SEC,
        max_retries: int = config.HTTP_MAX_RETRIES,
        backoff: float = config.HTTP_RETRY_BACKOFF_SEC,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        lookup_url = lookup_url or config.LOOKUP_URL
        delivery_url = delivery_url or config.DELIVERY_URL
        if not lookup_url or not delivery_url:
            raise ValueError("未配置接口地址，请设置 CHECKUP_LOOKUP_URL / CHECKUP_DELIVERY_URL")
        self._lookup_url = lookup_url
        self._delivery_url = delivery_url
        self._max_retries = max(0, max_retries)
        self._backoff = backoff
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def _check_response(self, resp: httpx.Response) -> dict:
        resp.raise_for_status()
        try:
            return resp.json()
        except ValueError as e:
            raise ValueError(f"接口返回的不是 JSON：{resp.text[:200]}") from e

    def _with_retries(self, action: str, call: Callable[[], T]) -> T:
        attempt = 0
        while True:
            try:
                return call()
            except (httpx.TransportError, httpx.HTTPStatusError) as e:
                retryable = not isinstance(e, httpx.HTTPStatusError) or e.response.status_code >= 500
                if not retryable or attempt >= self._max_retries:
                    raise
                attempt += 1
                logger.warning(f"{action}失败，第 {attempt} 次重试：{e}")
                time.sleep(self._backoff * attempt)

    def lookup(self, id_number: str) -> LookupResponse:
        def call() -> LookupResponse:
            resp = self._client.post(
                self._lookup_url,
                params={"sfz": id_number},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
            return LookupResponse.model_validate(self._check_response(resp))

        return self._with_retries("企信ID查询", call)

    def deliver(self, account_id: str, data: bytes, filename: str) -> DeliveryResponse:
        def call() -> DeliveryResponse:
            resp = self._client.post(
                self._delivery_url,
                params={"userId": account_id},
                files={"file": (filename, data, "application/pdf")},
            )
            return DeliveryResponse.model_validate(self._check_response(resp))

        return self._with_retries("文件发送", call)

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
