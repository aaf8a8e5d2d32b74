class GracefulShutdownError(Exception):
    pass


class ExtensionRegistrationError(GracefulShutdownError):
    """The Extensions API refused (or never answered) the register call."""


class SignalInstallError(GracefulShutdownError):
    pass


class RuntimeApiError(GracefulShutdownError):
    def __init__(self, path: str, status: int, body: str = ""):
        super().__init__(f"{path} returned HTTP {status}: {body}")
        self.path = path
        self.status = status
        self.body = body


class MissingFieldError(GracefulShutdownError):
    def __init__(self, path: str):
        super().__init__(f"missing field: {path}")
        self.path = path
