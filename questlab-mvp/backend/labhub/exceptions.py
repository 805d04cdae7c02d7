"""
统一异常体系。

所有业务异常继承 BaseAppException，包含：
- type:        错误类型标识（validation_error / config_error / http_error / ...）
- code:        业务错误码（QUEST_CONFIG_MISSING / QUEST_HTTP_ERROR / ...）
- message:     人类可读的描述
- detail:      可选的附加信息（dict / list / None）
- http_status: 返回给 host 的 HTTP 状态码

Quest Hub 相关的异常都继承 HubError，各自带上自己的字段
（status_code / response_body / path / operation / config_key）。
View 层只需 raise，exception_handler 统一捕获并格式化响应。
"""


class BaseAppException(Exception):
    """所有业务异常的基类。"""

    type = 'error'
    code = 'UNKNOWN_ERROR'
    http_status = 500

    def __init__(self, message, code=None, detail=None, http_status=None):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail
        super().__init__(message)


class ValidationError(BaseAppException):
    """输入验证失败，400。"""

    type = 'validation_error'
    code = 'VALIDATION_ERROR'
    http_status = 400


class BlockError(BaseAppException):
    """业务规则阻止操作，409。"""

    type = 'block'
    code = 'BUSINESS_BLOCK'
    http_status = 409


# ── Quest Hub ──────────────────────────────────────────────────────────────

class HubError(BaseAppException):
    """Quest Hub 集成层异常的基类。"""

    type = 'hub_error'
    code = 'QUEST_HUB_ERROR'
    http_status = 502


class ConfigError(HubError):
    """
    配置缺失（client id / secret 等）。

    致命错误，不重试。config_key 指出是哪个 setting 缺了。
    """

    type = 'config_error'
    code = 'QUEST_CONFIG_MISSING'
    http_status = 500

    def __init__(self, message, config_key=None, **kwargs):
        self.config_key = config_key
        kwargs.setdefault('detail', {'config_key': config_key})
        super().__init__(message, **kwargs)


class HttpError(HubError):
    """
    Hub 返回了非 200，或者响应内容不可用。

    response_body 原样保留，排查问题全靠它。
    """

    type = 'http_error'
    code = 'QUEST_HTTP_ERROR'

    def __init__(self, message, status_code=None, response_body=None, **kwargs):
        self.status_code = status_code
        self.response_body = response_body
        kwargs.setdefault('detail', {'status_code': status_code, 'response_body': response_body})
        super().__init__(message, **kwargs)


class TransportError(HubError):
    """DNS / 超时 / TLS 之类的网络层失败，可重试。"""

    type = 'transport_error'
    code = 'QUEST_TRANSPORT_ERROR'
    http_status = 503


class FileSystemError(HubError):
    """目录或文件的 create / read / write / delete 失败。"""

    type = 'filesystem_error'
    code = 'QUEST_FILESYSTEM_ERROR'
    http_status = 500

    def __init__(self, message, path=None, operation=None, **kwargs):
        self.path = str(path) if path is not None else None
        self.operation = operation
        kwargs.setdefault('detail', {'path': self.path, 'operation': operation})
        super().__init__(message, **kwargs)


class ParseError(HubError):
    """响应不是合法 JSON，或缺少预期字段。body 保留原文。"""

    type = 'parse_error'
    code = 'QUEST_PARSE_ERROR'

    def __init__(self, message, body=None, **kwargs):
        self.body = body
        kwargs.setdefault('detail', {'body': body})
        super().__init__(message, **kwargs)


class DecryptionError(BaseAppException):
    """结果文件解密失败，或解密出来是空的。"""

    type = 'decryption_error'
    code = 'DECRYPTION_FAILED'
    http_status = 500
