"""
Host API 的统一错误出口，挂在 DRF 的 EXCEPTION_HANDLER 上。

响应体永远是 {type, code, message[, detail]}，detail 按异常种类不同：

  http_error       502  {"status_code": 401, "response_body": "<Hub 原始响应>"}
  transport_error  503  无 detail（网络层失败，没有 Hub 响应可带）
  config_error     500  {"config_key": "QUEST_CLIENT_ID"}
  filesystem_error 500  {"path": "...", "operation": "write"}
  parse_error      502  {"body": "<无法解析的响应>"}
  decryption_error 500  service 层给的上下文
  validation_error 400  service 层给的上下文，或 DRF 的字段错误

Hub 的状态码放在 detail 里，HTTP 状态码只表示「上游出错」还是「调用方参数错」。
"""

import logging

from django.http import JsonResponse
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.views import exception_handler as drf_default_handler

from .exceptions import BaseAppException

logger = logging.getLogger(__name__)


def _render(error_type, code, message, detail, status):
    body = {'type': error_type, 'code': code, 'message': message}
    if detail is not None:
        body['detail'] = detail
    return JsonResponse(body, status=status)


def unified_exception_handler(exc, context):
    """业务异常和 DRF 字段校验错误走统一格式，其余交还 DRF。"""
    view = context.get('view') if context else None
    view_name = type(view).__name__ if view is not None else '-'

    if isinstance(exc, BaseAppException):
        if exc.http_status >= 500:
            logger.error("[%s] %s %s detail=%s", view_name, exc.code, exc.message, exc.detail)
        else:
            logger.info("[%s] %s %s", view_name, exc.code, exc.message)
        return _render(exc.type, exc.code, exc.message, exc.detail, exc.http_status)

    if isinstance(exc, DRFValidationError):
        return _render('validation_error', 'VALIDATION_ERROR', 'Request validation failed', exc.detail, 400)

    return drf_default_handler(exc, context)
