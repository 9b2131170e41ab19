"""CLI：generate 端到端、check、错误退出码。"""

import pytest
from openpyxl import Workbook

from checkup_report.cli import build_parser, main

from conftest import png_bytes, report_template


def make_root(root):
    (root / "template.pptx").write_bytes(report_template())
    wb = Workbook()
    ws = wb.active
    ws.append(["姓名", "证件号", "工号"])
    ws.append(["李雷", "110101199001011234", "A001"])
    ws.append(["韩梅梅", "110101199202022345", "A002"])
    wb.save(root / "员工表.xlsx")
    data = root / "data"
    data.mkdir()
    (data / "李雷-血常规.png").write_bytes(png_bytes())


def test_generate_then_check(tmp_path, capsys):
    make_root(tmp_path)
    main(["generate", "--root", str(tmp_path)])

    out = capsys.readouterr().out
    assert "已生成：1 人" in out
    assert "已跳过：1 人" in out
    assert "韩梅梅（110101199202022345）：缺少体检结果与AI总结" in out

    report = tmp_path / "output" / "体检报告_李雷_110101199001011234.pptx"
    assert report.is_file()

    main(["check", str(report)])
    out = capsys.readouterr().out
    assert "2 页" in out
    assert "  OK" in out


def test_generate_without_template_exits(tmp_path, capsys):
    with pytest.raises(SystemExit) as exc:
        main(["generate", "--root", str(tmp_path)])
    assert exc.value.code == 1
    assert "未找到模板文件" in capsys.readouterr().err


def test_send_requires_endpoints(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr("checkup_report.config.LOOKUP_URL", "")
    with pytest.raises(SystemExit):
        main(["send", "--dir", str(tmp_path)])
    assert "ERROR" in capsys.readouterr().err


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
