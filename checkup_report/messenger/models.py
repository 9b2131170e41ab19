"""企业微信 ID 查询 / 文件发送接口的响应模型。"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field


class LookupResponse(BaseModel):
    """POST <lookup>?sfz=<证件号> 的响应。"""
    return_code: int = Field(0, alias="returnCode")
    return_data: Any = Field(None, alias="returnData")      # 成功时为企业微信账号 ID
    return_message: str = Field("", alias="returnMessage")

    model_config = {"populate_by_name": True}

    @property
    def is_success(self) -> bool:
        return self.return_code == 1 and self.return_data not in (None, "")


class DeliveryResponse(BaseModel):
    """POST <delivery>?userId=<账号> 的响应。"""
    code: int = 0
    message: str = ""

    @property
    def is_success(self) -> bool:
        return self.code == 1


class DispatchRecord(BaseModel):
    """单个 PDF 的发送结果。"""
    file_name: str = Field(alias="fileName")
    name: str = ""
    id_number: str = Field("", alias="idNumber")
    account_id: Optional[str] = Field(None, alias="accountId")
    delivered: bool = False
    reason: str = ""

    model_config = {"populate_by_name": True}


class DispatchSummary(BaseModel):
    directory: Path
    records: list[DispatchRecord] = Field(default_factory=list)

    @property
    def succeeded(self) -> list[DispatchRecord]:
        return [r for r in self.records if r.delivered]

    @property
    def failed(self) -> list[DispatchRecord]:
        return [r for r in self.records if not r.delivered]

    @property
    def is_success(self) -> bool:
        return not self.failed
