class DevProxyError(Exception):
    pass


class ConfigError(DevProxyError):
    pass


class BuildError(DevProxyError):
    pass


class BufferClosedError(DevProxyError):
    """Raised when data is appended to a response buffer that was completed."""
