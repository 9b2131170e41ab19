"""员工体检报告 CLI。

用法:
  # 生成报告（模板、员工表默认在根目录或 data/ 下查找）
  checkup-report generate --root .

  # 生成并转换为 PDF，发送到企业微信
  checkup-report generate --pdf --send

  # 自定义模板页号
  checkup-report generate --slide-map slide_map.json

  # 把 send_data/ 下的 PDF 逐个发给员工
  checkup-report send --dir send_data

  # 检查一个 PPTX 的关系闭包与内容类型
  checkup-report check output/体检报告_李雷_110101199001011234.pptx
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from . import _resources, config
from .converter.soffice import SofficeConverter
from .employees.loaders import load_employees
from .messenger.client import MessengerHttpClient
from .messenger.dispatch import dispatch_directory
from .pipeline.models import BatchSummary, ReportConfig, SlideMap
from .pipeline.pipeline import DefaultReportPipeline
from .pptx_injector.integrity import check_package, slide_order
from .pptx_injector.package import OoxmlPackage


def print_batch_summary(summary: BatchSummary) -> None:
    print("\n===== 生成统计 =====")
    print(f"已生成：{len(summary.succeeded)} 人")
    for o in summary.succeeded:
        extra = f"，PDF：{o.pdf_path}" if o.pdf_path else ""
        sent = "，已发送" if o.delivered else ""
        print(f"  - {o.employee_name}（{o.id_number}） -> {o.output_path}{extra}{sent}")

    print(f"已跳过：{len(summary.skipped)} 人")
    for o in summary.skipped:
        print(f"  - {o.employee_name}（{o.id_number}）：{o.reason}")

    print(f"失败：{len(summary.failed)} 人")
    for o in summary.failed:
        print(f"  - {o.employee_name}（{o.id_number}）：{o.reason}")


def cmd_generate(args) -> int:
    if args.root:
        _resources.set_root_dir(args.root)
    if args.data_dir:
        _resources.set_data_dir(args.data_dir)
    if args.output_dir:
        _resources.set_output_dir(args.output_dir)

    template_path = _resources.find_template(Path(args.template) if args.template else None)
    sheet_path = _resources.find_employee_sheet(Path(args.employees) if args.employees else None)
    slide_map = SlideMap.from_json_file(Path(args.slide_map)) if args.slide_map else SlideMap()

    report_config = ReportConfig(
        templatePath=template_path,
        dataDir=_resources.get_data_dir(),
        outputDir=_resources.get_output_dir(),
        slideMap=slide_map,
        convertPdf=args.pdf or args.send,
        deliver=args.send,
        maxConcurrency=args.concurrency,
        converterConcurrency=config.CONVERTER_CONCURRENCY,
    )

    employees = load_employees(sheet_path)
    print(f"模板：{template_path}")
    print(f"员工表：{sheet_path}（{len(employees)} 人）")
    print(f"输出目录：{report_config.output_dir}")

    converter = SofficeConverter() if report_config.convert_pdf else None
    messenger = MessengerHttpClient() if report_config.deliver else None
    try:
        pipeline = DefaultReportPipeline(report_config, converter=converter, messenger=messenger)
        summary = asyncio.run(pipeline.run_batch(employees))
    finally:
        if messenger is not None:
            messenger.close()

    print_batch_summary(summary)
    return 0 if summary.is_success else 1


def cmd_send(args) -> int:
    if args.root:
        _resources.set_root_dir(args.root)
    directory = Path(args.dir) if args.dir else _resources.get_send_dir()

    with MessengerHttpClient() as client:
        summary = dispatch_directory(client, directory)

    print("\n===== 发送统计 =====")
    print(f"成功：{len(summary.succeeded)} 个")
    print(f"失败：{len(summary.failed)} 个")
    for r in summary.failed:
        print(f"  - {r.file_name}：{r.reason}")
    return 0 if summary.is_success else 1


def cmd_check(args) -> int:
    failed = False
    for path in args.files:
        pkg = OoxmlPackage.from_path(Path(path))
        problems = check_package(pkg)
        print(f"{path}：{len(slide_order(pkg))} 页")
        if problems:
            failed = True
            for p in problems:
                print(f"  - {p}")
        else:
            print("  OK")
    return 1 if failed else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="checkup-report", description="员工体检报告批量生成")
    parser.add_argument("-v", "--verbose", action="store_true", help="详细日志")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="批量生成报告")
    gen.add_argument("--root", default=None, help="工作根目录（默认当前目录）")
    gen.add_argument("--template", default=None, help="模板 PPTX 路径")
    gen.add_argument("--employees", default=None, help="员工表 xlsx 路径")
    gen.add_argument("--data-dir", default=None, help="员工附件目录（默认 <root>/data）")
    gen.add_argument("--output-dir", default=None, help="输出目录（默认 <root>/output）")
    gen.add_argument("--slide-map", default=None, help="模板页号配置 JSON")
    gen.add_argument("--concurrency", type=int, default=config.MAX_CONCURRENCY, help="同时处理的员工数")
    gen.add_argument("--pdf", action="store_true", help="同时转换为 PDF")
    gen.add_argument("--send", action="store_true", help="转换为 PDF 并发送到企业微信")
    gen.set_defaults(func=cmd_generate)

    send = sub.add_parser("send", help="发送目录中的报告 PDF")
    send.add_argument("--root", default=None, help="工作根目录（默认当前目录）")
    send.add_argument("--dir", default=None, help="PDF 目录（默认 <root>/send_data）")
    send.set_defaults(func=cmd_send)

    check = sub.add_parser("check", help="检查 PPTX 包的完整性")
    check.add_argument("files", nargs="+", help="PPTX 文件")
    check.set_defaults(func=cmd_check)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    try:
        code = args.func(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
