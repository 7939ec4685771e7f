"""Error codes, exceptions and user-facing messages shared across the pipeline."""


class ErrorCodes:
    ENTITY_NOT_ALLOWED = "ENTITY_NOT_ALLOWED"
    FIELD_NOT_ALLOWED = "FIELD_NOT_ALLOWED"
    OPERATION_NOT_ALLOWED = "OPERATION_NOT_ALLOWED"
    QUERY_TOO_COMPLEX = "QUERY_TOO_COMPLEX"
    TOO_MANY_JOINS = "TOO_MANY_JOINS"
    TOO_MANY_FILTERS = "TOO_MANY_FILTERS"
    RESULT_SET_TOO_LARGE = "RESULT_SET_TOO_LARGE"
    DANGEROUS_KEYWORD = "DANGEROUS_KEYWORD"
    INSUFFICIENT_PERMISSION = "INSUFFICIENT_PERMISSION"
    SENSITIVE_FIELD_DENIED = "SENSITIVE_FIELD_DENIED"
    DATA_SCOPE_EXCEEDED = "DATA_SCOPE_EXCEEDED"
    QUERY_PARSE_FAILED = "QUERY_PARSE_FAILED"
    INVALID_FILTER = "INVALID_FILTER"
    INVALID_FIELD_TYPE = "INVALID_FIELD_TYPE"
    FILTER_REQUIRED = "FILTER_REQUIRED"
    EXECUTION_FAILED = "EXECUTION_FAILED"


class WarningCodes:
    LIMIT_ADJUSTED = "LIMIT_ADJUSTED"
    FIELDS_REMOVED = "FIELDS_REMOVED"


class Messages:
    """Replies shown to end users. Internal error detail never goes here."""

    UNPARSEABLE_QUERY = "无法理解您的查询，请尝试更具体的描述"
    TRANSLATION_ERROR = "查询转换过程中发生错误，请稍后重试"
    EXECUTION_ERROR = "查询执行过程中发生错误，请稍后重试"
    CANCELLED = "请求已取消。"
    GENERIC_APOLOGY = "抱歉，系统暂时无法处理您的请求，请稍后重试。"
    NO_REPLY = "抱歉，我无法处理您的请求。"
    CLARIFY_FALLBACK = "为了更准确地查询，请补充一下您想查询的时间范围和对象范围。"
    UNAUTHENTICATED = "用户未认证，请先登录"


class QueryAgentError(Exception):
    """Base class for errors raised inside the query agent."""


class ModelCallError(QueryAgentError):
    """Every model candidate and retry failed."""

    def __init__(self, message: str = "All model candidates failed.", errors=None):
        super().__init__(message)
        self.errors = list(errors or [])


class CoercionError(QueryAgentError, ValueError):
    """A wire value cannot be converted to a field's declared type."""

    def __init__(self, field: str, value, target: str):
        super().__init__(f"cannot convert {value!r} to {target} for field {field}")
        self.field = field
        self.value = value
        self.target = target


class RequestCancelled(QueryAgentError):
    """The caller's cancellation signal was set."""


def ensure_not_cancelled(cancel_event) -> None:
    """Raise RequestCancelled when the cooperative cancel signal is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise RequestCancelled()
