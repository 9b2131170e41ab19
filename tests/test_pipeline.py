"""报告流水线：李雷场景、空员工跳过、失败隔离、文件名分配。"""

import asyncio
import re

from docx import Document

from checkup_report.employees.models import AssetBundle, Attachment, Employee, ImagePage
from checkup_report.employees.rasterize import PdfRasterizer
from checkup_report.pipeline import BatchSummary, DefaultReportPipeline, ReportConfig, SlideMap
from checkup_report.pipeline.models import SKIP_REASON_NO_CONTENT
from checkup_report.pipeline.pipeline import assign_report_names, build_report_filename, cover_values
from checkup_report.pptx_injector.content_types import ContentTypes
from checkup_report.pptx_injector.integrity import check_package, slide_order
from checkup_report.pptx_injector.package import CONTENT_TYPES_PART, OoxmlPackage
from checkup_report.pptx_injector.relationships import REL_IMAGE, parse_relationships, rels_path_for, resolve_target

from conftest import corrupt_docx, png_bytes, report_template

LI_LEI = Employee(name="李雷", id_number="110101199001011234", employee_no="A001", gender="男", age="35")
HAN_MEIMEI = Employee(name="韩梅梅", id_number="110101199202022345", employee_no="A002")
WANG_WU = Employee(name="王五", id_number="11010119850505567X", employee_no="A003")

_T_RE = re.compile(r"<a:t>([^<]*)</a:t>")


def write_summary(path, lines):
    doc = Document()
    for line in lines:
        doc.add_paragraph(line)
    doc.save(str(path))


def setup_workspace(tmp_path):
    template = tmp_path / "template.pptx"
    template.write_bytes(report_template())
    data = tmp_path / "data"
    data.mkdir()
    (data / "李雷-血常规.png").write_bytes(png_bytes())
    (data / "李雷-尿常规.png").write_bytes(png_bytes(color=(0, 0, 200)))
    write_summary(data / "李雷-AI总结.docx", ["整体情况良好", "建议复查血脂"])
    (data / "王五_心电图.png").write_bytes(png_bytes())
    return template, data


def make_pipeline(tmp_path, template, data, **kwargs) -> DefaultReportPipeline:
    config = ReportConfig(templatePath=template, dataDir=data, outputDir=tmp_path / "output", **kwargs)
    return DefaultReportPipeline(config)


def slide_text(pkg: OoxmlPackage, path: str) -> str:
    return "".join(_T_RE.findall(pkg.get_text(path)))


def test_li_lei_scenario(tmp_path):
    """封面 + 两张化验图 + 结尾；总结页在模板中不存在，跳过。"""
    template, data = setup_workspace(tmp_path)
    pipeline = make_pipeline(tmp_path, template, data, slideMap=SlideMap(closing=[7]))

    summary = asyncio.run(pipeline.run_batch([LI_LEI]))
    assert [o.employee_name for o in summary.succeeded] == ["李雷"]
    outcome = summary.succeeded[0]
    assert outcome.output_path.name == "体检报告_李雷_110101199001011234.pptx"
    assert outcome.slide_count == 4

    pkg = OoxmlPackage.from_path(outcome.output_path)
    order = slide_order(pkg)
    assert len(order) == 4

    cover = slide_text(pkg, order[0])
    assert "姓名：李雷" in cover
    assert "证件号：110101199001011234" in cover
    assert "{{" not in cover

    media = []
    for path in order[1:3]:
        rels = parse_relationships(pkg.get_text(rels_path_for(path)))
        images = [resolve_target(path, r.target) for r in rels if r.type_is(REL_IMAGE)]
        assert len(images) == 1
        assert pkg.has(images[0])
        media.append(images[0])
        text = slide_text(pkg, path)
        assert text.startswith(("血常规", "尿常规"))
        assert "李雷（A001）" in text
    assert len(set(media)) == 2

    assert "感谢您的阅读" in slide_text(pkg, order[3])
    assert "李雷，祝您健康" in slide_text(pkg, order[3])

    ct = ContentTypes(pkg.get_text(CONTENT_TYPES_PART))
    for path in order:
        assert ct.has_override(path)
    assert ct.has_default("png")
    assert check_package(pkg) == []


def test_empty_employee_skipped_and_batch_continues(tmp_path):
    template, data = setup_workspace(tmp_path)
    pipeline = make_pipeline(tmp_path, template, data, slideMap=SlideMap(closing=[7]))

    summary = asyncio.run(pipeline.run_batch([HAN_MEIMEI, LI_LEI, WANG_WU]))
    assert [o.employee_name for o in summary.outcomes] == ["韩梅梅", "李雷", "王五"]
    assert [o.employee_name for o in summary.skipped] == ["韩梅梅"]
    assert summary.skipped[0].reason == SKIP_REASON_NO_CONTENT
    assert summary.skipped[0].output_path is None
    assert {o.employee_name for o in summary.succeeded} == {"李雷", "王五"}
    assert summary.is_success

    produced = sorted(p.name for p in (tmp_path / "output").glob("*.pptx"))
    assert produced == ["体检报告_李雷_110101199001011234.pptx", "体检报告_王五_11010119850505567X.pptx"]


def test_failure_is_recorded_per_employee(tmp_path):
    _, data = setup_workspace(tmp_path)
    pipeline = make_pipeline(tmp_path, tmp_path / "missing.pptx", data)

    summary = asyncio.run(pipeline.run_batch([LI_LEI, HAN_MEIMEI]))
    assert [o.employee_name for o in summary.failed] == ["李雷"]
    assert summary.failed[0].reason.startswith("生成失败：")
    assert [o.employee_name for o in summary.skipped] == ["韩梅梅"]
    assert not summary.is_success


def test_corrupt_summary_does_not_stop_batch(tmp_path):
    template, data = setup_workspace(tmp_path)
    corrupt_docx(data / "坏人-AI总结.docx")
    (data / "坏人-血常规.png").write_bytes(png_bytes())
    pipeline = make_pipeline(tmp_path, template, data, slideMap=SlideMap(closing=[7]))

    summary = asyncio.run(pipeline.run_batch([Employee(name="坏人", id_number="110101199303033456"), LI_LEI]))
    assert [o.employee_name for o in summary.outcomes] == ["坏人", "李雷"]
    assert {o.employee_name for o in summary.succeeded} == {"坏人", "李雷"}


def test_unexpected_error_is_recorded_per_employee(tmp_path, monkeypatch):
    template, data = setup_workspace(tmp_path)
    pipeline = make_pipeline(tmp_path, template, data, slideMap=SlideMap(closing=[7]))
    original = pipeline.build_report

    def build_report(bundle, output_path, today=None):
        if bundle.employee.name == "王五":
            raise KeyError("word/document.xml")
        return original(bundle, output_path, today)

    monkeypatch.setattr(pipeline, "build_report", build_report)

    summary = asyncio.run(pipeline.run_batch([WANG_WU, LI_LEI]))
    assert [o.employee_name for o in summary.failed] == ["王五"]
    assert summary.failed[0].reason.startswith("生成失败：")
    assert [o.employee_name for o in summary.succeeded] == ["李雷"]


def test_empty_batch(tmp_path):
    template, data = setup_workspace(tmp_path)
    summary = asyncio.run(make_pipeline(tmp_path, template, data).run_batch([]))
    assert summary == BatchSummary()


def test_build_requests_follow_slide_map(tmp_path):
    template, data = setup_workspace(tmp_path)
    slide_map = SlideMap(cover=1, imageSlides={"心电图": 4}, defaultImage=2, summary=5, closing=[6, 7])
    pipeline = make_pipeline(tmp_path, template, data, slideMap=slide_map)

    bundle = AssetBundle(employee=LI_LEI, summary_text="第一条\n第二条")
    pages = [ImagePage(label="心电图", category="心电图", data=png_bytes()), ImagePage(label="其他", data=png_bytes())]
    requests = pipeline.build_requests(bundle, pages)

    assert [r.template_slide for r in requests] == [1, 4, 2, 5, 6, 7]
    assert requests[0].placeholder_values["姓名"] == "李雷"
    assert requests[1].placeholder_values["影像标题"] == "心电图"
    assert requests[1].image == pages[0].data
    assert requests[3].placeholder_values["总结"] == "第一条\n第二条"


def test_summary_slide_omitted_without_text(tmp_path):
    template, data = setup_workspace(tmp_path)
    pipeline = make_pipeline(tmp_path, template, data)
    requests = pipeline.build_requests(AssetBundle(employee=LI_LEI), [])
    assert [r.template_slide for r in requests] == [1, 6]


class FakeRasterizer(PdfRasterizer):
    def render(self, pdf_path, label, category=""):
        return [ImagePage(label=f"{label} 第{i}页", category=category, data=png_bytes()) for i in (1, 2)]


def test_pdf_attachments_rasterized(tmp_path):
    template, data = setup_workspace(tmp_path)
    config = ReportConfig(templatePath=template, dataDir=data, outputDir=tmp_path / "output")
    pipeline = DefaultReportPipeline(config, rasterizers=[FakeRasterizer()])

    bundle = AssetBundle(employee=LI_LEI, attachments=[
        Attachment("李雷-心电图.pdf", data / "李雷-心电图.pdf", "心电图", "pdf", "心电图", ".pdf"),
        Attachment("李雷-血常规.png", data / "李雷-血常规.png", "血常规", "image", "化验", ".png"),
        Attachment("李雷-说明.txt", data / "李雷-说明.txt", "说明", "other", "", ".txt"),
    ])
    pages = pipeline.image_pages(bundle)
    assert [p.label for p in pages] == ["心电图 第1页", "心电图 第2页", "血常规"]
    assert [p.category for p in pages] == ["心电图", "心电图", "化验"]
    assert pages[2].source == data / "李雷-血常规.png"


def test_cover_values():
    values = cover_values(LI_LEI)
    assert values["姓名"] == "李雷"
    assert values["工号"] == "A001"
    assert re.fullmatch(r"\d{4}年\d{2}月\d{2}日", values["日期"])


def test_report_names_disambiguated():
    twin = Employee(name="李雷", id_number="110101199001011234")
    nameless = Employee(name="张 三/", id_number="")
    names = assign_report_names([LI_LEI, twin, nameless, twin])
    assert names == [
        "体检报告_李雷_110101199001011234.pptx",
        "体检报告_李雷_110101199001011234_2.pptx",
        "体检报告_张三.pptx",
        "体检报告_李雷_110101199001011234_3.pptx",
    ]
    assert build_report_filename(LI_LEI, ext=".pdf") == "体检报告_李雷_110101199001011234.pdf"
