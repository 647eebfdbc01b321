"""统一业务异常模型。

所有跨模块抛出的错误都继承自 GenAIError，便于在调用方做统一捕获：

- ConfigError: 后端或凭证缺失/无效。
- RequestError: 不支持的模型 ID、非法的规范请求。
- ResponseError: 厂商响应缺字段、必需数组为空、JSON 无法解析。
- SerializationError: 规范 payload 无法序列化。
- TransportError: 无法连接到服务。
- ServiceError: 服务端显式拒绝调用（携带厂商错误码与信息）。
- InternalError: 存储后端内部故障，例如无法获取连接。

本层不做任何重试，重试/退避由上层或传输层负责。
"""


class GenAIError(Exception):
    """异常基类。

    Attributes:
        code: 机器可读错误码（如 "UNSUPPORTED_MODEL"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 model_id、vendor_message 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ConfigError(GenAIError):
    """配置错误，例如未配置存储后端或凭证缺失。"""


class RequestError(GenAIError):
    """请求错误：模型 ID 无法识别，或请求本身不合法。"""


class ResponseError(GenAIError):
    """厂商响应无法解析为统一结构。"""


class SerializationError(GenAIError):
    """请求 payload 序列化失败。"""


class TransportError(GenAIError):
    """网络层错误，例如连接失败、超时等。"""


class ServiceError(GenAIError):
    """服务端显式拒绝调用（非 2xx），code 为厂商错误码。"""


class InternalError(GenAIError):
    """存储后端内部故障。"""
