"""soffice 转换：可执行文件定位与子进程调用（用假的 soffice 脚本）。"""

import os
import stat
import sys

import pytest

from checkup_report.converter import soffice
from checkup_report.converter.soffice import SofficeConverter, resolve_soffice_bin

pytestmark = pytest.mark.skipif(sys.platform.startswith("win"), reason="需要 sh 脚本")

FAKE_SOFFICE = """#!/bin/sh
outdir=""
src=""
while [ $# -gt 0 ]; do
  case "$1" in
    --outdir) outdir="$2"; shift 2 ;;
    *) src="$1"; shift ;;
  esac
done
name=$(basename "$src" .pptx)
printf '%%PDF-1.4 fake' > "$outdir/$name.pdf"
"""

BROKEN_SOFFICE = """#!/bin/sh
echo "source file could not be loaded" >&2
exit 81
"""


def write_script(path, body):
    path.write_text(body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def no_system_soffice(monkeypatch):
    monkeypatch.setattr(soffice, "SOFFICE_CANDIDATES", ())


def test_resolve_prefers_configured_path(tmp_path, no_system_soffice):
    script = write_script(tmp_path / "soffice", FAKE_SOFFICE)
    assert resolve_soffice_bin(str(script)) == str(script)
    assert resolve_soffice_bin(str(tmp_path / "missing")) is None
    assert resolve_soffice_bin("") is None


def test_resolve_searches_path(tmp_path, monkeypatch):
    write_script(tmp_path / "fake-office", FAKE_SOFFICE)
    monkeypatch.setattr(soffice, "SOFFICE_CANDIDATES", ("fake-office",))
    monkeypatch.setenv("PATH", str(tmp_path) + os.pathsep + os.environ.get("PATH", ""))
    assert resolve_soffice_bin() == str(tmp_path / "fake-office")


def test_convert_writes_pdf_next_to_output(tmp_path, no_system_soffice):
    script = write_script(tmp_path / "soffice", FAKE_SOFFICE)
    pptx = tmp_path / "体检报告_李雷_110101199001011234.pptx"
    pptx.write_bytes(b"pptx")

    pdf = SofficeConverter(soffice_bin=str(script)).convert_to_pdf(pptx, tmp_path / "pdf")
    assert pdf == tmp_path / "pdf" / "体检报告_李雷_110101199001011234.pdf"
    assert pdf.read_bytes().startswith(b"%PDF")


def test_convert_failure_raises(tmp_path, no_system_soffice):
    script = write_script(tmp_path / "soffice", BROKEN_SOFFICE)
    pptx = tmp_path / "a.pptx"
    pptx.write_bytes(b"pptx")
    with pytest.raises(RuntimeError, match="could not be loaded"):
        SofficeConverter(soffice_bin=str(script)).convert_to_pdf(pptx)


def test_convert_without_soffice(tmp_path, no_system_soffice):
    pptx = tmp_path / "a.pptx"
    pptx.write_bytes(b"pptx")
    with pytest.raises(FileNotFoundError):
        SofficeConverter(soffice_bin="").convert_to_pdf(pptx)
