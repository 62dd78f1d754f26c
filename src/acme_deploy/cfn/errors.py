"""
Error taxonomy for stack deployments.

The Stack Directory Client converts every botocore exception into one of these
before it reaches orchestration code.
"""
from typing import Optional


class DeployError(Exception):
    """
    Base class for all errors raised while deploying or deleting a stack.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class NotFoundError(DeployError):
    pass


class StackNotFoundError(NotFoundError):
    def __init__(self, stack_name: str, message: Optional[str] = None):
        super().__init__(message or f"Stack {stack_name} does not exist")
        self.stack_name = stack_name


class ChangeSetNotFoundError(NotFoundError):
    def __init__(self, change_set_name: str, message: Optional[str] = None):
        super().__init__(message or f"Change set {change_set_name} does not exist")
        self.change_set_name = change_set_name


class ValidationRejectedError(DeployError):
    """
    The remote rejected a request as malformed. The message is surfaced verbatim.
    """


class RemoteOperationFailedError(DeployError):
    """
    A change set or stack reached a failed state. ``str()`` is the remote reason.
    """

    def __init__(self, reason: str, status: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.status = status


class UserCancelledError(DeployError):
    def __init__(self, message: str = "user cancelled deployment"):
        super().__init__(message)


class OperationCancelledError(DeployError):
    """
    Raised locally when the caller cancels or the deadline passes.
    The remote operation keeps running.
    """

    def __init__(self, message: str = "operation cancelled"):
        super().__init__(message)


class TransportError(DeployError):
    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class ChangeSetRenderError(DeployError):
    def __init__(self, message: str, stack_name: str = "", change_set_name: str = ""):
        super().__init__(message)
        self.stack_name = stack_name
        self.change_set_name = change_set_name
