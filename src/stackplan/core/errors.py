"""Error taxonomy for stack planning and synthesis."""

from collections.abc import Sequence


class StackPlanError(RuntimeError):
    """Base class for all stackplan errors."""


class DuplicateIdError(StackPlanError):
    """A resource id was declared twice in one graph."""

    def __init__(self, resource_id: str) -> None:
        """Record the duplicated id."""
        super().__init__(f"Resource '{resource_id}' is already declared.")
        self.resource_id = resource_id


class UnknownResourceError(StackPlanError):
    """A reference points at a resource that was never declared."""

    def __init__(self, resource_id: str, referenced_by: str | None = None) -> None:
        """Record the missing id and, when known, who referenced it."""
        message = f"Resource '{resource_id}' is not declared."
        if referenced_by:
            message = f"Resource '{resource_id}' referenced by '{referenced_by}' is not declared."
        super().__init__(message)
        self.resource_id = resource_id
        self.referenced_by = referenced_by


class CycleDetectedError(StackPlanError):
    """The dependency graph has no valid creation order."""

    def __init__(self, members: Sequence[str]) -> None:
        """Record the ids that form the cycle."""
        self.members = list(members)
        path = " -> ".join([*self.members, self.members[0]]) if self.members else ""
        super().__init__(f"Dependency cycle detected: {path}")


class UnresolvedDependencyError(StackPlanError):
    """A deferred attribute was resolved before its source produced outputs."""

    def __init__(
        self,
        resource_id: str,
        source_id: str,
        field: str,
        synthesized: Sequence[str] = (),
    ) -> None:
        """Record the consumer, the missing source field and what was already created."""
        super().__init__(
            f"Resource '{resource_id}' needs '{source_id}.{field}' "
            "but the source has no recorded outputs."
        )
        self.resource_id = resource_id
        self.source_id = source_id
        self.field = field
        self.synthesized = list(synthesized)


class PolicyViolationError(StackPlanError):
    """A password policy cannot produce a strong enough password."""


class IncompatiblePortError(StackPlanError):
    """Container port and target group port do not match."""

    def __init__(self, container_port: int, target_port: int) -> None:
        """Record both ports."""
        super().__init__(
            f"Task definition container port {container_port} does not match "
            f"target group port {target_port}."
        )
        self.container_port = container_port
        self.target_port = target_port


class UnknownGroupError(StackPlanError):
    """A security rule references an undeclared security group."""

    def __init__(self, group: str) -> None:
        """Record the missing group name."""
        super().__init__(f"Security rule references undeclared group '{group}'.")
        self.group = group


class AddressSpaceExhaustedError(StackPlanError):
    """The address block is too small for the requested subnets."""


class ProviderError(StackPlanError):
    """An error raised by a provider create or destroy call.

    Transient errors are only raised when the request did not take effect,
    so the call may be retried safely.
    """

    def __init__(self, message: str, transient: bool = False, code: str | None = None) -> None:
        """Record whether the failure is transient."""
        super().__init__(message)
        self.transient = transient
        self.code = code

    @property
    def classification(self) -> str:
        """Return ``transient`` or ``permanent``."""
        return "transient" if self.transient else "permanent"


class SynthesisError(StackPlanError):
    """A fatal error that halted a synthesis run."""

    def __init__(self, resource_id: str, synthesized: Sequence[str], cause: Exception) -> None:
        """Record the failing resource and what was already created."""
        self.resource_id = resource_id
        self.synthesized = list(synthesized)
        self.cause = cause
        created = ", ".join(self.synthesized) or "none"
        super().__init__(
            f"Synthesis failed at '{resource_id}': {cause}. Already created: {created}"
        )


class SynthesisAborted(StackPlanError):
    """A synthesis run was cancelled between resource steps."""

    def __init__(self, resource_id: str, synthesized: Sequence[str]) -> None:
        """Record where the run stopped."""
        self.resource_id = resource_id
        self.synthesized = list(synthesized)
        created = ", ".join(self.synthesized) or "none"
        super().__init__(f"Synthesis aborted before '{resource_id}'. Already created: {created}")


class DestroyError(StackPlanError):
    """One or more resources could not be destroyed."""

    def __init__(self, failed: dict[str, Exception]) -> None:
        """Record failures by resource id."""
        self.failed = dict(failed)
        details = "; ".join(f"{resource_id}: {exc}" for resource_id, exc in self.failed.items())
        super().__init__(f"Failed to destroy {len(self.failed)} resource(s): {details}")


class StateError(StackPlanError):
    """Plan state could not be read or written."""
