"""员工表读取与附件收集。"""

from datetime import datetime

import pytest
from docx import Document
from openpyxl import Workbook

from checkup_report.employees.assets import (
    attachment_kind,
    attachment_label,
    classify,
    collect_assets,
    extract_text,
    list_data_files,
    normalize_name,
)
from checkup_report.employees.loaders import load_employees
from checkup_report.employees.models import IMAGE, OTHER, PDF, Employee

from conftest import corrupt_docx


def write_sheet(path, rows):
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    wb.save(path)


def test_load_employees_with_header_aliases(tmp_path):
    path = tmp_path / "员工表.xlsx"
    write_sheet(path, [
        ["姓名", "身份证号", "员工工号", "性别", "年龄", "体检日期", "部门"],
        ["李雷", "110101199001011234", 1001.0, "男", 35, datetime(2025, 3, 7), "研发"],
        [None, "110101199202022345", "A002", "女", 30, None, "行政"],
        ["  王五 ", "11010119850505567x", "A003", None, None, "2025/3/8", None],
    ])

    employees = load_employees(path)
    assert [e.name for e in employees] == ["李雷", "王五"]

    li = employees[0]
    assert li.id_number == "110101199001011234"
    assert li.employee_no == "1001"
    assert li.age == "35"
    assert li.exam_date == "2025-03-07"
    assert li.raw["部门"] == "研发"

    wang = employees[1]
    assert wang.id_number == "11010119850505567X"
    assert wang.gender == ""
    assert wang.exam_date == "2025/3/8"


def test_load_employees_header_only(tmp_path):
    path = tmp_path / "空表.xlsx"
    write_sheet(path, [["姓名", "证件号"]])
    assert load_employees(path) == []


def test_load_employees_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_employees(tmp_path / "不存在.xlsx")


def test_normalize_name():
    assert normalize_name("李雷-血常规.jpg") == "李雷"
    assert normalize_name("Li Lei_ECG.pdf") == "lilei"
    assert normalize_name("李雷") == "李雷"
    assert normalize_name("") == ""


def test_attachment_label_and_classify():
    assert attachment_label("李雷-血常规-复查.jpg") == "血常规-复查"
    assert attachment_label("李雷.jpg") == "附件"
    assert classify("血常规") == "化验"
    assert classify("InBody 报告") == "体成分"
    assert classify("ECG") == "心电图"
    assert classify("胸片") == ""
    assert attachment_kind(".JPG") == IMAGE
    assert attachment_kind(".pdf") == PDF
    assert attachment_kind(".txt") == OTHER


def test_list_data_files(tmp_path):
    (tmp_path / "b.png").write_bytes(b"")
    (tmp_path / "a.pdf").write_bytes(b"")
    (tmp_path / "~$临时.docx").write_bytes(b"")
    (tmp_path / "sub").mkdir()
    assert list_data_files(tmp_path) == ["a.pdf", "b.png"]
    assert list_data_files(tmp_path / "missing") == []


def test_collect_assets(tmp_path):
    doc = Document()
    doc.add_paragraph("整体良好")
    doc.add_paragraph("")
    table = doc.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "血脂"
    table.rows[0].cells[1].text = "偏高"
    doc.save(str(tmp_path / "李雷-AI总结.docx"))
    for name in ("李雷-血常规.png", "李雷_心电图.pdf", "李雷-说明.txt", "李雷雷-血常规.png", "韩梅梅-血常规.png"):
        (tmp_path / name).write_bytes(b"x")

    bundle = collect_assets(Employee(name="李雷"), list_data_files(tmp_path), tmp_path)

    assert bundle.summary_file == tmp_path / "李雷-AI总结.docx"
    assert bundle.summary_text == "整体良好\n血脂 偏高"
    assert bundle.has_summary
    by_name = {a.file_name: a for a in bundle.attachments}
    assert set(by_name) == {"李雷-血常规.png", "李雷_心电图.pdf", "李雷-说明.txt"}
    assert by_name["李雷-血常规.png"].category == "化验"
    assert by_name["李雷_心电图.pdf"].kind == PDF
    assert by_name["李雷_心电图.pdf"].full_path == tmp_path / "李雷_心电图.pdf"
    assert by_name["李雷-说明.txt"].kind == OTHER


def test_collect_assets_nothing_matched(tmp_path):
    bundle = collect_assets(Employee(name="韩梅梅"), ["李雷-血常规.png"], tmp_path)
    assert not bundle.has_summary
    assert not bundle.has_attachments
    assert bundle.summary_file is None


def test_extract_text_unreadable_docx(tmp_path):
    broken = tmp_path / "坏的总结.docx"
    broken.write_bytes(b"not a zip")
    assert extract_text(broken) == ""


def test_extract_text_malformed_document_xml(tmp_path, caplog):
    broken = tmp_path / "李雷-AI总结.docx"
    corrupt_docx(broken)
    assert extract_text(broken) == ""
    assert "无法读取AI总结" in caplog.text
