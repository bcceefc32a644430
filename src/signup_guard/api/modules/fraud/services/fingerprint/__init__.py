from signup_guard.api.modules.fraud.services.fingerprint.generator import (
    DeviceSignature,
    FingerprintGenerator,
)

__all__ = ("DeviceSignature", "FingerprintGenerator")
