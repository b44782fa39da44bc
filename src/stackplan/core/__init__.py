"""Graph, declaration builders and synthesis."""

from stackplan.core.attributes import Deferred, Literal
from stackplan.core.binder import ServiceBinder
from stackplan.core.graph import DependencyGraph
from stackplan.core.network import NetworkPolicy, NetworkTopology, SecurityRule, SubnetType
from stackplan.core.resources import Resource, ResourceKind, resource
from stackplan.core.secrets import Credential, PasswordPolicy, SecretStore
from stackplan.core.state import PlanState, load_state, save_state
from stackplan.core.synthesizer import Synthesizer

__all__ = [
    "Credential",
    "Deferred",
    "DependencyGraph",
    "Literal",
    "NetworkPolicy",
    "NetworkTopology",
    "PasswordPolicy",
    "PlanState",
    "Resource",
    "ResourceKind",
    "SecretStore",
    "SecurityRule",
    "ServiceBinder",
    "SubnetType",
    "Synthesizer",
    "load_state",
    "resource",
    "save_state",
]
