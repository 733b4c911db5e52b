"""
Checks for the route guard scanner.

- ``Check`` -- abstract base every rule implements
- ``RouteAuthorizationCheck`` -- routes with no visible authorization
- ``DangerousQueryInputCheck`` -- request input flowing into query builders
- ``MassAssignmentCheck`` -- bulk input into unprotected models
- ``IntentAuthCheck`` -- declarative auth rules
- ``IntentMassAssignmentCheck`` -- declarative model specs
"""

from .base import Check
from .dangerous_query import DangerousQueryInputCheck
from .intent_auth import IntentAuthCheck
from .intent_mass_assignment import IntentMassAssignmentCheck
from .mass_assignment import MassAssignmentCheck
from .route_authorization import RouteAuthorizationCheck

__all__ = [
    "Check",
    "RouteAuthorizationCheck",
    "DangerousQueryInputCheck",
    "MassAssignmentCheck",
    "IntentAuthCheck",
    "IntentMassAssignmentCheck",
]
