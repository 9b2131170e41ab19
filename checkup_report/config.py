from dotenv import load_dotenv
import os

load_dotenv()

# 企业微信 ID 查询 / 文件发送接口
LOOKUP_URL: str = os.getenv("CHECKUP_LOOKUP_URL", "")
DELIVERY_URL: str = os.getenv("CHECKUP_DELIVERY_URL", "")

# HTTP 设置
HTTP_TIMEOUT_SEC: float = float(os.getenv("CHECKUP_HTTP_TIMEOUT_SEC", "60"))
HTTP_MAX_RETRIES: int = int(os.getenv("CHECKUP_HTTP_MAX_RETRIES", "2"))
HTTP_RETRY_BACKOFF_SEC: float = 1.0

# 并发：员工任务 / PDF 转换
MAX_CONCURRENCY: int = int(os.getenv("CHECKUP_MAX_CONCURRENCY", "4"))
CONVERTER_CONCURRENCY: int = int(os.getenv("CHECKUP_CONVERTER_CONCURRENCY", "1"))

# LibreOffice 转换
SOFFICE_BIN: str = os.getenv("CHECKUP_SOFFICE_BIN", "")
CONVERT_TIMEOUT_SEC: float = float(os.getenv("CHECKUP_CONVERT_TIMEOUT_SEC", "180"))

# PDF 栅格化
PDF_RENDER_SCALE: float = 2.0
PDF_RENDER_DPI: int = 144

# 报告元数据
REPORT_AUTHOR: str = "Health Manage AI"
REPORT_TITLE: str = "2025 员工体检报告"
REPORT_SUBJECT: str = "员工体检报告"
