"""
CompendiumSync — 下载并导入 Quest compendium（检验项目 + AOE 问题目录）。

下载：流式 GET 到 temp 目录 → 解压 → 导入 → 删 zip。
导入：两个 '^' 分隔的平面文件，首行是 MSH header，跳过。

  ORDCODE_<recv>.TXT   [1] procedure code  [4] 状态  [6] 名称  [7] 标本  [8] 备注
  AOE_<recv>.TXT       [3] procedure code  [4] question code  [6] 状态
                       [9] 问题文本  [11] tips  [13] 字段类型

只导入状态为 'A' 的行。AOE 必须在 ORDCODE 之后导入：
问题只挂在已存在的 procedure code 上。
单行失败只记日志、跳过，不影响其他行。
"""

import json
import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from django.db import DatabaseError, IntegrityError, transaction

from ..exceptions import FileSystemError, HttpError, ParseError, TransportError, ValidationError
from .gateway import HubGateway
from .requisition import ensure_directory
from .types import HubConfig, ImportSummary

logger = logging.getLogger(__name__)

DELIMITER = "^"
ACTIVE = "A"
DATASET_GROUP_NAME = "Quest Clinical Dataset"
FULL_COMPENDIUM_MARKER = "TMP_CDC_FULL"
RESOURCE_PREFIX = "/hub-resource-server"
FILE_LIST_PATH = "/hub-resource-server/oauth2/compendium/requestCompendiums/CDC"

FIELD_TYPE_MAP = {
    "S": "S",   # Select
    "N": "N",   # Number
    "D": "D",   # Date
    "T": "T",   # Text
    "Q": "T",   # question 类型按 Text 处理
}


def map_field_type(code) -> str:
    return FIELD_TYPE_MAP.get((code or "").strip().upper(), "T")


@dataclass
class OrderCodeRow:
    procedure_code: str
    name: str
    specimen: str
    notes: str


@dataclass
class AoeRow:
    procedure_code: str
    question_code: str
    question_text: str
    tips: str
    fldtype: str


def _field(fields, index) -> str:
    return fields[index].strip() if index < len(fields) else ""


def parse_order_code_line(line) -> Optional[OrderCodeRow]:
    """非法或非 active 的行返回 None。"""
    fields = line.rstrip("\r").split(DELIMITER)
    if len(fields) <= 4 or not _field(fields, 1):
        return None
    if _field(fields, 4) != ACTIVE:
        return None
    return OrderCodeRow(
        procedure_code=_field(fields, 1),
        name=_field(fields, 6),
        specimen=_field(fields, 7),
        notes=_field(fields, 8),
    )


def parse_aoe_line(line) -> Optional[AoeRow]:
    fields = line.rstrip("\r").split(DELIMITER)
    if len(fields) <= 6 or not _field(fields, 3) or not _field(fields, 4):
        return None
    if _field(fields, 6) != ACTIVE:
        return None
    return AoeRow(
        procedure_code=_field(fields, 3),
        question_code=_field(fields, 4),
        question_text=_field(fields, 9),
        tips=_field(fields, 11),
        fldtype=map_field_type(_field(fields, 13) or "Q"),
    )


def iter_data_lines(text):
    """跳过首行 header 和空行，yield (行号, 行内容)。"""
    for line_number, line in enumerate(text.split("\n")):
        if line_number == 0 or not line.strip():
            continue
        yield line_number, line


def select_full_compendium(listing):
    """
    从 file list 响应里挑出 TMP_CDC_FULL 的 fileName / retrieveURI。

    响应形如 {"<key>": [{"fileName": ..., "retrieveURI": ...}], ...}，
    也兼容顶层是 list 的情况。retrieveURI 会补上 /hub-resource-server 前缀。
    """
    groups = listing.values() if isinstance(listing, dict) else (listing or [])
    file_name = retrieve_uri = None
    for group in groups:
        if not group:
            continue
        entries = group if isinstance(group, list) else [group]
        entry = entries[0]
        if not isinstance(entry, dict):
            continue
        if FULL_COMPENDIUM_MARKER in str(entry.get("fileName", "")):
            file_name = entry["fileName"]
        if FULL_COMPENDIUM_MARKER in str(entry.get("retrieveURI", "")):
            retrieve_uri = entry["retrieveURI"]

    if not file_name or not retrieve_uri:
        return None, None
    if not retrieve_uri.startswith(RESOURCE_PREFIX):
        retrieve_uri = RESOURCE_PREFIX + retrieve_uri
    return file_name, retrieve_uri


def archive_path(directory, file_name) -> Path:
    """fileName 只取文件名部分，保证 zip 落在 temp 目录里。"""
    name = Path(file_name or "").name
    if name in ("", ".", ".."):
        raise ValidationError(
            "Compendium file name is invalid",
            code="INVALID_FILE_NAME",
            detail={"file_name": file_name},
        )
    return Path(directory) / name


class CompendiumImporter:
    """把解压后的两个平面文件写进 ProcedureType / ProcedureQuestion。"""

    def __init__(self, provider, directory):
        self.provider = provider
        self.directory = Path(directory)
        self.summary = ImportSummary()

    @property
    def order_code_path(self) -> Path:
        return self.directory / f"ORDCODE_{self.provider.receiver_facility_id}.TXT"

    @property
    def aoe_path(self) -> Path:
        return self.directory / f"AOE_{self.provider.receiver_facility_id}.TXT"

    def run(self) -> ImportSummary:
        self.import_order_codes(self._read(self.order_code_path))
        self._remove(self.order_code_path)
        self.import_aoe(self._read(self.aoe_path))
        self._remove(self.aoe_path)
        logger.info("[Compendium] import completed %s", self.summary)
        return self.summary

    def _read(self, path) -> str:
        if not path.exists():
            logger.error("[Compendium] %s not found", path)
            raise FileSystemError(f"{path.name} not found", path=path, operation="read")
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise FileSystemError(f"Unable to read {path}", path=path, operation="read") from exc

    def _remove(self, path):
        try:
            path.unlink()
        except OSError as exc:
            logger.warning("[Compendium] could not delete %s: %s", path, exc)

    # ── group ──────────────────────────────────────────────────────────────

    def dataset_group(self):
        """唯一的 'Quest Clinical Dataset' group 行；并发创建时撞唯一约束就回查。"""
        from ..models import ProcedureType

        lookup = {"name": DATASET_GROUP_NAME, "procedure_type": "grp"}
        defaults = {
            "lab": self.provider,
            "description": DATASET_GROUP_NAME,
            "procedure_type_name": "procedure",
        }
        try:
            with transaction.atomic():
                group, created = ProcedureType.objects.get_or_create(defaults=defaults, **lookup)
        except IntegrityError:
            group, created = ProcedureType.objects.get(**lookup), False
        if created:
            logger.info("[Compendium] %s group created", DATASET_GROUP_NAME)
        return group

    # ── ORDCODE ────────────────────────────────────────────────────────────

    def import_order_codes(self, text):
        from ..models import ProcedureType

        group = self.dataset_group()
        for line_number, line in iter_data_lines(text):
            try:
                row = parse_order_code_line(line)
                if row is None:
                    continue
                if ProcedureType.objects.filter(procedure_code=row.procedure_code).exists():
                    self.summary.order_codes_skipped += 1
                    continue
                with transaction.atomic():
                    ProcedureType.objects.create(
                        parent=group,
                        lab=self.provider,
                        name=row.name,
                        procedure_code=row.procedure_code,
                        procedure_type="ord",
                        procedure_type_name="laboratory_test",
                        specimen=row.specimen,
                        description=row.name,
                        notes=row.notes,
                    )
                self.summary.order_codes_imported += 1
            except (DatabaseError, ValueError) as exc:
                self.summary.errors += 1
                logger.warning("[Compendium] error importing order code line=%d: %s", line_number, exc)

    # ── AOE ────────────────────────────────────────────────────────────────

    def import_aoe(self, text):
        from ..models import ProcedureQuestion, ProcedureType

        for line_number, line in iter_data_lines(text):
            try:
                row = parse_aoe_line(line)
                if row is None:
                    continue
                if not ProcedureType.objects.filter(procedure_code=row.procedure_code).exists():
                    self.summary.questions_skipped += 1
                    continue
                with transaction.atomic():
                    _, created = ProcedureQuestion.objects.get_or_create(
                        lab=self.provider,
                        procedure_code=row.procedure_code,
                        question_code=row.question_code,
                        defaults={
                            "question_text": row.question_text,
                            "tips": row.tips,
                            "fldtype": row.fldtype,
                        },
                    )
                if created:
                    self.summary.questions_imported += 1
                else:
                    self.summary.questions_skipped += 1
            except (DatabaseError, ValueError) as exc:
                self.summary.errors += 1
                logger.warning("[Compendium] error importing question line=%d: %s", line_number, exc)

        if self.summary.questions_imported:
            logger.info("[Compendium] questions imported count=%d", self.summary.questions_imported)


class CompendiumSync:

    def __init__(self, gateway: HubGateway, provider, config: Optional[HubConfig] = None):
        self.gateway = gateway
        self.provider = provider
        self.config = config or gateway.config
        self.temp_dir = Path(self.config.temp_dir)

    def request_file_list(self):
        body = self.gateway.get(f"{FILE_LIST_PATH}?BU={self.provider.receiver_facility_id}")
        try:
            return json.loads(body)
        except ValueError as exc:
            raise ParseError("Compendium file list is not valid JSON", body=body) from exc

    def download(self, file_name, retrieve_uri) -> str:
        """下载、解压、导入。返回给 host 展示的状态信息，不抛 HTTP 错误。"""
        archive = archive_path(self.temp_dir, file_name)
        ensure_directory(self.temp_dir)
        try:
            self.gateway.download(retrieve_uri, archive)
        except HttpError as exc:
            return f"Error downloading file. Status code: {exc.status_code}"
        except TransportError as exc:
            return f"An error occurred: {exc.message}"

        if not self.unzip(archive):
            return "Error unzipping file"

        self.import_compendium()
        archive.unlink(missing_ok=True)
        return f"File downloaded successfully imported into database: {archive.name}"

    def unzip(self, archive) -> bool:
        try:
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(self.temp_dir)
        except (zipfile.BadZipFile, OSError) as exc:
            logger.error("[Compendium] unable to unzip %s: %s", archive, exc)
            return False
        return True

    def import_compendium(self) -> ImportSummary:
        return CompendiumImporter(self.provider, self.temp_dir).run()
