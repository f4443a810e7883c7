"""
Exception hierarchy for itilops

Every failure the automation core reports falls into one of three kinds:
configuration problems, lookup misses, and multi-write operations that
only partly applied.
"""

from typing import Optional, Union


class ItilOpsError(Exception):
    """Base class for all itilops errors"""


class ConfigurationError(ItilOpsError):
    """
    Raised when the SLA policy or assignment matrix cannot answer a lookup

    Examples are a severity with no SLA threshold or an assignment matrix
    without a ``{*, *, *}`` catch-all rule. Records are never produced from
    a guessed default.
    """


class NotFoundError(ItilOpsError):
    """Raised when a referenced CI, incident, problem or change does not exist"""

    def __init__(
        self,
        resource: str,
        resource_id: Optional[Union[str, int]] = None,
        namespace: Optional[str] = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.namespace = namespace
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if namespace is not None:
            msg += f" (namespace={namespace})"
        super().__init__(msg)


class PartialCompletionError(ItilOpsError):
    """
    Raised when a multi-record update was only partly applied

    Args:
        operation: Name of the logical operation (e.g. "close_change")
        succeeded: Identifiers of the sub-updates that were written
        failed: Identifiers of the sub-updates that were not written
        errors: Error message per failed identifier
    """

    def __init__(
        self,
        operation: str,
        succeeded: list[str],
        failed: list[str],
        errors: Optional[dict[str, str]] = None,
    ) -> None:
        self.operation = operation
        self.succeeded = list(succeeded)
        self.failed = list(failed)
        self.errors = dict(errors or {})
        super().__init__(
            f"{operation} partially completed: "
            f"{len(self.succeeded)} succeeded, {len(self.failed)} failed "
            f"({', '.join(self.failed)})"
        )

    @property
    def remaining(self) -> list[str]:
        """Identifiers the caller still has to apply"""
        return list(self.failed)
