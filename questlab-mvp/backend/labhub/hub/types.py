"""
Quest Hub 层的标准数据结构。

HubConfig 从 Django settings 构造一次，之后作为参数传给各组件，
组件内部不再直接读全局配置。
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

HUB_RESOURCE_TESTING_URL = "https://certhubservices.quanum.com"
HUB_RESOURCE_PRODUCTION_URL = "https://hubservices.quanum.com"


def resolve_base_url(production_mode: bool) -> str:
    """production → 正式环境，其余一律走测试环境。"""
    if production_mode:
        return HUB_RESOURCE_PRODUCTION_URL
    return HUB_RESOURCE_TESTING_URL


@dataclass(frozen=True)
class HubConfig:
    client_id: str = ""
    client_secret: str = ""
    production_mode: bool = False
    download_requisition: bool = True
    drive_encryption: bool = True
    timeout: float = 30
    requisition_dir: Path = Path("documents/labs")
    temp_dir: Path = Path("documents/temp")
    results_dir: Path = Path("documents/procedure_results")
    provider_name: str = "Quest"

    @property
    def base_url(self) -> str:
        return resolve_base_url(self.production_mode)

    @classmethod
    def from_settings(cls, settings=None) -> "HubConfig":
        if settings is None:
            from django.conf import settings

        return cls(
            client_id=getattr(settings, "QUEST_CLIENT_ID", "") or "",
            client_secret=getattr(settings, "QUEST_CLIENT_SECRET", "") or "",
            production_mode=bool(getattr(settings, "QUEST_PRODUCTION_MODE", False)),
            download_requisition=bool(getattr(settings, "QUEST_DOWNLOAD_REQUISITION", True)),
            drive_encryption=bool(getattr(settings, "DRIVE_ENCRYPTION", True)),
            timeout=float(getattr(settings, "QUEST_HTTP_TIMEOUT", 30)),
            requisition_dir=Path(getattr(settings, "QUEST_REQUISITION_DIR", cls.requisition_dir)),
            temp_dir=Path(getattr(settings, "QUEST_TEMP_DIR", cls.temp_dir)),
            results_dir=Path(getattr(settings, "QUEST_RESULTS_DIR", cls.results_dir)),
            provider_name=getattr(settings, "QUEST_PROVIDER_NAME", "Quest"),
        )


@dataclass
class Token:
    access_token: str
    issued_at: float                   # epoch seconds
    expires_in: Optional[int] = None   # 响应里有 expires_in 才填


@dataclass
class RequisitionDocument:
    """解码并落盘后的 requisition PDF。"""

    filename: str
    content: bytes = field(repr=False)
    document_type: str = "REQ"
    path: Optional[Path] = None
    response_message: str = ""


@dataclass
class ImportSummary:
    order_codes_imported: int = 0
    order_codes_skipped: int = 0
    questions_imported: int = 0
    questions_skipped: int = 0
    errors: int = 0
