"""PPTX → PDF 转换：ABC 接口 + LibreOffice (soffice) 子进程实现。"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from .. import config

logger = logging.getLogger(__name__)

SOFFICE_CANDIDATES = (
    "/Applications/LibreOffice.app/Contents/MacOS/soffice",
    "C:/Program Files/LibreOffice/program/soffice.exe",
    "soffice",
    "libreoffice",
)


class PdfConverter(ABC):
    """文档转 PDF 的抽象接口。"""

    @abstractmethod
    def convert_to_pdf(self, pptx_path: Path, out_dir: Optional[Path] = None) -> Path:
        """转换并返回 PDF 路径。失败时抛异常。"""


def resolve_soffice_bin(configured: str = "") -> Optional[str]:
    """配置值优先，其次常见安装位置与 PATH。"""
    seen: set[str] = set()
    for raw in (configured, *SOFFICE_CANDIDATES):
        value = (raw or "").strip()
        if not value or value in seen:
            continue
        seen.add(value)
        if os.path.isabs(value):
            path = Path(value).expanduser()
            if path.is_file():
                return str(path)
            continue
        resolved = shutil.which(value)
        if resolved:
            return resolved
    return None


class SofficeConverter(PdfConverter):
    """headless soffice 转换。每次调用使用独立的用户配置目录，避免锁冲突。"""

    def __init__(self, soffice_bin: str = config.SOFFICE_BIN, timeout: float = config.CONVERT_TIMEOUT_SEC):
        self._configured = soffice_bin
        self.timeout = timeout

    def convert_to_pdf(self, pptx_path: Path, out_dir: Optional[Path] = None) -> Path:
        pptx_path = Path(pptx_path)
        out_dir = Path(out_dir) if out_dir else pptx_path.parent
        out_dir.mkdir(parents=True, exist_ok=True)

        soffice = resolve_soffice_bin(self._configured)
        if soffice is None:
            raise FileNotFoundError("未找到 LibreOffice (soffice)，请安装或设置 CHECKUP_SOFFICE_BIN")

        with tempfile.TemporaryDirectory(prefix="checkup-soffice-") as td:
            tmp_dir = Path(td)
            env, user_install = self._build_env(tmp_dir)
            cmd = [
                soffice,
                "--headless",
                "--nologo",
                "--nolockcheck",
                "--nofirststartwizard",
                "--invisible",
                user_install,
                "--convert-to",
                "pdf",
                "--outdir",
                str(out_dir),
                str(pptx_path),
            ]
            try:
                proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout, env=env)
            except subprocess.TimeoutExpired as e:
                raise TimeoutError(f"PDF 转换超时（{self.timeout}秒）：{pptx_path.name}") from e

        pdf_path = out_dir / f"{pptx_path.stem}.pdf"
        if proc.returncode != 0 or not pdf_path.is_file():
            detail = (proc.stderr or proc.stdout or "").strip()
            raise RuntimeError(f"PDF 转换失败 (exit {proc.returncode})：{pptx_path.name} {detail}")

        logger.info(f"PDF 转换完成：{pdf_path}")
        return pdf_path

    @staticmethod
    def _build_env(tmp_dir: Path) -> tuple[dict, str]:
        profile_dir = (tmp_dir / "lo_profile").resolve()
        profile_dir.mkdir(parents=True, exist_ok=True)
        env = os.environ.copy()
        for key in ("HOME", "USERPROFILE", "TMPDIR", "TEMP", "TMP"):
            env[key] = str(tmp_dir)
        env.setdefault("LANG", "en_US.UTF-8")
        return env, f"-env:UserInstallation={profile_dir.as_uri()}"
