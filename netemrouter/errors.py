from typing import Optional, Sequence


class RouterError(Exception):
    pass


class DuplicateInterfaceError(RouterError):
    def __init__(self, name: str):
        super().__init__(f"Interface {name} is already registered")
        self.name = name


class FacilityError(RouterError):
    """A host networking command failed."""

    def __init__(self, cmd: Sequence[str], rc: int, stderr: str = ""):
        super().__init__(f"{' '.join(cmd)} failed (rc={rc}): {stderr.strip()}")
        self.cmd = list(cmd)
        self.rc = rc
        self.stderr = stderr


class InterfaceError(RouterError):
    """Base for the errors reported against one physical interface."""

    def __init__(self, interface: str, msg: str, cause: Optional[Exception] = None):
        super().__init__(f"{interface}: {msg}")
        self.interface = interface
        self.msg = msg
        self.cause = cause


class VirtualTargetCreationError(InterfaceError):
    def __init__(
        self,
        interface: str,
        target: str,
        msg: str,
        cause: Optional[Exception] = None,
    ):
        super().__init__(interface, msg, cause=cause)
        self.target = target


class CapturePointExistsWithConflictingConfigError(InterfaceError):
    pass


class RuleInstallationError(InterfaceError):
    pass


class TeardownError(InterfaceError):
    pass


class ForwardingError(RouterError):
    def __init__(self, msg: str, cause: Optional[Exception] = None):
        super().__init__(msg)
        self.msg = msg
        self.cause = cause
