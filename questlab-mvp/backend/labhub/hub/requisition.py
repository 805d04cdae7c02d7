"""
RequisitionFetcher — 向 Hub 请求 requisition PDF 包（ABN / REQ / AOE）并落盘。

流程：选文档类型 → POST → 取 orderSupportDocuments[0] → 两次 base64 解码
→ 按文档类型起文件名 → 写入 requisition 目录。

这一层不重试，失败直接抛；重试由 tasks.fetch_requisition 负责。
"""

import base64
import binascii
import json
import logging
import os
import re
import time
import uuid
from pathlib import Path

from ..exceptions import FileSystemError, HttpError, ParseError
from .gateway import HubGateway
from .orders import ORDER_DOCUMENT_PATH, build_order_payload
from .types import RequisitionDocument

logger = logging.getLogger(__name__)

THIRD_PARTY_BILLING = "T"
ABN_NOT_REQUIRED = "not_required"
DIRECTORY_MODE = 0o770

_WHITESPACE_RE = re.compile(rb"\s+")


def select_document_types(billing_type, abn_status, unanswered_aoe_count) -> list[str]:
    """
    决定要向 Hub 要哪些文档。

    - REQ 永远要
    - ABN：第三方付费（billing_type == 'T'）且 ABN 不是 not_required
    - AOE：还有未回答的 AOE 问题
    """
    types = []
    if billing_type == THIRD_PARTY_BILLING and abn_status != ABN_NOT_REQUIRED:
        types.append("ABN")
    types.append("REQ")
    if unanswered_aoe_count > 0:
        types.append("AOE")
    return types


def count_unanswered_questions(order) -> int:
    """order 上每个 procedure code 的 active AOE 问题里，还没有非空答案的个数。"""
    from ..models import ProcedureAnswer, ProcedureQuestion

    count = 0
    for code in order.codes.all():
        answered = (
            ProcedureAnswer.objects
            .filter(order=order, procedure_order_seq=code.seq)
            .exclude(answer='')
            .values_list('question_code', flat=True)
        )
        count += (
            ProcedureQuestion.objects
            .filter(procedure_code=code.procedure_code, activity=True)
            .exclude(question_code__in=list(answered))
            .count()
        )
    return count


def _strict_b64decode(data) -> bytes:
    if isinstance(data, str):
        data = data.encode("ascii")
    return base64.b64decode(_WHITESPACE_RE.sub(b"", data), validate=True)


def decode_document_data(document_data) -> bytes:
    """
    Hub 返回的 documentData 是两层 base64：解一次得到中间字符串，再解一次才是 PDF。
    任何一层失败都视为 payload 损坏。
    """
    if not document_data:
        raise HttpError("Requisition document is empty", status_code=200)
    try:
        intermediate = _strict_b64decode(document_data)
    except (binascii.Error, ValueError) as exc:
        raise HttpError(f"Corrupt requisition payload (outer layer): {exc}", status_code=200) from exc
    try:
        return _strict_b64decode(intermediate)
    except (binascii.Error, ValueError) as exc:
        raise HttpError(f"Corrupt requisition payload (inner layer): {exc}", status_code=200) from exc


def requisition_filename(document_type, order_id=None) -> str:
    doc = (document_type or "").upper()
    if "ABN" in doc and "REQ" in doc:
        prefix = "abnRequisition"
    elif "ABN" in doc:
        prefix = "abnForm"
    elif "AOE" in doc:
        prefix = "aoeForm"
    else:
        prefix = "labRequisition"

    parts = [prefix]
    if order_id is not None:
        parts.append(str(order_id))
    parts.append(time.strftime("%Y%m%d%H%M%S"))
    parts.append(uuid.uuid4().hex[:6])
    return "-".join(parts) + ".pdf"


def ensure_directory(path) -> Path:
    """不存在就建；并发重复创建是安全的。"""
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
        os.chmod(path, DIRECTORY_MODE)
    except OSError as exc:
        raise FileSystemError(f"Unable to create directory: {path}", path=path, operation="create") from exc
    return path


class RequisitionFetcher:

    def __init__(self, gateway: HubGateway, directory=None):
        self.gateway = gateway
        self.directory = Path(directory) if directory else gateway.config.requisition_dir

    def document_types_for(self, order) -> list[str]:
        return select_document_types(
            order.billing_type,
            order.abn_status,
            count_unanswered_questions(order),
        )

    def request(self, order_hl7, document_types) -> dict:
        body = self.gateway.post(ORDER_DOCUMENT_PATH, build_order_payload(order_hl7, document_types))
        try:
            return json.loads(body)
        except ValueError as exc:
            logger.error("[QuestHub] requisition response is not JSON: %s", body)
            raise ParseError("Requisition response is not valid JSON", body=body) from exc

    def fetch(self, order_hl7, order) -> RequisitionDocument:
        """
        Returns:
            RequisitionDocument（已写入 self.directory）

        Raises:
            HttpError / ParseError / TransportError / FileSystemError
        """
        document_types = self.document_types_for(order)
        logger.info("[QuestHub] requesting requisition order_id=%s types=%s", order.pk, document_types)
        payload = self.request(order_hl7, document_types)

        documents = payload.get("orderSupportDocuments") if isinstance(payload, dict) else None
        if not documents:
            raise HttpError(
                "Requisition response has no orderSupportDocuments",
                status_code=200,
                response_body=json.dumps(payload),
            )

        if not isinstance(documents, list) or not isinstance(documents[0], dict):
            logger.error("[QuestHub] malformed orderSupportDocuments order_id=%s", order.pk)
            raise ParseError("orderSupportDocuments is not a list of documents", body=json.dumps(payload))

        first = documents[0]
        document_type = first.get("documentType") or "REQ"
        content = decode_document_data(first.get("documentData"))

        filename = requisition_filename(document_type, order.pk)
        path = self.save(filename, content)
        logger.info("[QuestHub] requisition saved order_id=%s file=%s bytes=%d", order.pk, filename, len(content))

        return RequisitionDocument(
            filename=filename,
            content=content,
            document_type=document_type,
            path=path,
            response_message=first.get("responseMessage") or "",
        )

    def save(self, filename, content) -> Path:
        directory = ensure_directory(self.directory)
        path = directory / filename
        try:
            path.write_bytes(content)
        except OSError as exc:
            raise FileSystemError(f"Unable to write requisition {path}", path=path, operation="write") from exc
        return path
