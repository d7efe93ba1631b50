"""
Recovery verification.

Re-queries system health after remediation so the report can compare
before and after.
"""

from autorecovery.recovery_verification.verifier import (
    HealthAssessor,
    HealthVerifier,
    HttpHealthAssessor,
    LambdaHealthAssessor,
    StaticHealthAssessor,
    parse_system_health,
)

__all__ = [
    "HealthAssessor",
    "HealthVerifier",
    "HttpHealthAssessor",
    "LambdaHealthAssessor",
    "StaticHealthAssessor",
    "parse_system_health",
]
