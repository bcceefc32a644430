from signup_guard.api.modules.fraud.services.registry.audit import FraudAuditTrail
from signup_guard.api.modules.fraud.services.registry.devices import DeviceRegistry
from signup_guard.api.modules.fraud.services.registry.networks import (
    SYSTEM_ACTOR,
    NetworkReputationTracker,
)
from signup_guard.api.modules.fraud.services.registry.signups import SignupLedger

__all__ = (
    "SYSTEM_ACTOR",
    "DeviceRegistry",
    "FraudAuditTrail",
    "NetworkReputationTracker",
    "SignupLedger",
)
