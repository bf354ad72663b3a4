"""FastAPI dependencies for authentication and service lookup."""

from .auth import (
    CurrentActor,
    Identity,
    ManagerActor,
    OptionalActor,
    TokenIdentityProvider,
    get_current_actor,
    get_optional_actor,
    require_manager,
    role_required,
)
from .services import (
    AssignmentSchedulerDep,
    MetricsRegistryDep,
    ProductivityScorerDep,
    TicketServiceDep,
    UserServiceDep,
    WorkloadTrackerDep,
)

__all__ = [
    "AssignmentSchedulerDep",
    "CurrentActor",
    "Identity",
    "ManagerActor",
    "MetricsRegistryDep",
    "OptionalActor",
    "ProductivityScorerDep",
    "TicketServiceDep",
    "TokenIdentityProvider",
    "UserServiceDep",
    "WorkloadTrackerDep",
    "get_current_actor",
    "get_optional_actor",
    "require_manager",
    "role_required",
]
