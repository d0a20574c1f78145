"""
Error taxonomy for the reconciler runtime.

TransportError is raised by hardware drivers and travels unchanged; the
peripheral errors wrap it (as __cause__) with the node it happened on.
"""

from typing import Optional


class HertzError(Exception):
    """Base class for all errors raised by hertz"""


class TransportError(HertzError):
    """The hardware driver or the link to the device failed"""


class UnknownPeripheralError(HertzError):
    """No peripheral class is registered for the requested tag"""

    def __init__(self, tag: str):
        super().__init__(f"Unknown peripheral tag: {tag!r}")
        self.tag = tag


class PeripheralError(HertzError):
    """An operation on a single peripheral instance failed"""

    def __init__(self, message: str, node_id: Optional[int] = None, tag: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.node_id = node_id
        self.tag = tag

    def __str__(self):
        if self.node_id is None:
            return self.message
        return f"{self.message} (node {self.node_id}, {self.tag})"


class InitializationError(PeripheralError):
    """Hardware setup failed, or initialize() was called twice"""


class NotInitializedError(PeripheralError):
    """Operation attempted before initialize() settled"""


class UpdateError(PeripheralError):
    """An apply or disown handler failed"""

    def __init__(self, message: str, key: Optional[str] = None, node_id: Optional[int] = None,
                 tag: Optional[str] = None):
        super().__init__(message, node_id=node_id, tag=tag)
        self.key = key


class DisposedError(PeripheralError):
    """Operation attempted on a disposed peripheral"""
