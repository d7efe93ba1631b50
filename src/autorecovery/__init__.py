"""
Todo app auto-recovery.

Turns health-check failures, CloudWatch alarms and operator requests into
bounded, cooldown-gated remediation runs, verifies the outcome and routes a
severity-tiered report to the on-call channels.
"""

__version__ = "0.1.0"
