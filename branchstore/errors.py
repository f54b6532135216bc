"""Errors raised by the branch store."""


class BranchStoreError(Exception):
    """Base class for branch store errors."""


class BranchNotFound(BranchStoreError):
    """Raised when a branch id does not key an existing branch."""

    def __init__(self, branch_id: str):
        self.branch_id = branch_id
        super().__init__(f"Branch not found: {branch_id}")


class InvalidOperation(BranchStoreError):
    """Raised when an operation would break the branch tree invariants."""
