class XxapiError(Exception):
    """Base class; the message is safe to show to chat users."""


class UpstreamError(XxapiError):
    pass


class NetworkError(XxapiError):
    pass


class PersistError(XxapiError):
    pass


class DeliveryError(XxapiError):
    pass


class UnsupportedError(XxapiError):
    pass


class ConfigError(XxapiError, ValueError):
    pass
