"""Error taxonomy shared by the bridge, the executor and the recording layer."""

from __future__ import annotations


class BridgeError(Exception):
    pass


# Transport


class NotConnectedError(BridgeError):
    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "Browser agent not connected. Start the agent (bronco-browser agent) or enable the extension, "
            "then retry."
        )


class RequestTimeoutError(BridgeError):
    def __init__(self, method: str, timeout: float) -> None:
        super().__init__(f"Request timeout: method={method} after {timeout:g}s")
        self.method = method
        self.timeout = timeout


class RemoteError(BridgeError):
    """The executor answered with an `error` field."""

    def __init__(self, message: str, *, method: str | None = None) -> None:
        super().__init__(message)
        self.method = method


class TransportLostError(BridgeError):
    def __init__(self, message: str = "Extension disconnected") -> None:
        super().__init__(message)


# Executor gating


class ControlDisabledError(BridgeError):
    def __init__(self) -> None:
        super().__init__("Browser control is disabled. Enable it via the extension (bronco-browser control on).")


class NoTargetError(BridgeError):
    def __init__(self) -> None:
        super().__init__("No tab connected. Use connect_tab first.")


class TargetNotFoundError(BridgeError):
    def __init__(self, surface_id: int | str) -> None:
        super().__init__(f"Tab {surface_id} not found")
        self.surface_id = surface_id


class UnknownMethodError(BridgeError):
    def __init__(self, method: str) -> None:
        super().__init__(f"Unknown method: {method}")
        self.method = method


class InvalidParamsError(BridgeError):
    pass


class HostError(BridgeError):
    """Raised by a host automation API when an operation cannot be performed."""


# Recording


class EmptyRecordingError(BridgeError):
    def __init__(self) -> None:
        super().__init__("No actions to save")


class RecordingNotFoundError(BridgeError):
    def __init__(self, name: str) -> None:
        super().__init__(f'Recording "{name}" not found')
        self.name = name


__all__ = [
    "BridgeError",
    "ControlDisabledError",
    "EmptyRecordingError",
    "HostError",
    "InvalidParamsError",
    "NoTargetError",
    "NotConnectedError",
    "RecordingNotFoundError",
    "RemoteError",
    "RequestTimeoutError",
    "TargetNotFoundError",
    "TransportLostError",
    "UnknownMethodError",
]
