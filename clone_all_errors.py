from typing import Optional


class CloneAllError(Exception):
    """Base class for every error clone-all reports."""


class ConfigError(CloneAllError):
    pass


class DependencyMissing(CloneAllError):
    pass


class ForgeError(CloneAllError):
    """Repository listing failed; no job list can be built."""


class ForgeUnavailable(ForgeError):
    pass


class AuthError(ForgeError):
    pass


class OwnerNotFound(ForgeError):
    def __init__(self, owner: str):
        super().__init__(f"Owner not found on GitHub: {owner}")
        self.owner = owner


class CloneFailed(CloneAllError):
    def __init__(self, name: str, exit_status: Optional[int] = None):
        detail = f" (exit status {exit_status})" if exit_status is not None else ""
        super().__init__(f"Clone failed: {name}{detail}")
        self.name = name
        self.exit_status = exit_status
