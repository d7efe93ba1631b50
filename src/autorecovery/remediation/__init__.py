"""
Remediation layer: execute planned actions via registered handlers.

When use_aws_integration is True the workflow uses the boto3-backed handlers;
otherwise stub handlers that succeed without side effects.
"""

from autorecovery.remediation.executor import ActionExecutor
from autorecovery.remediation.handlers import (
    AWSRemediationHandlers,
    HandlerRegistry,
    aws_handlers,
    stub_handlers,
)

__all__ = [
    "AWSRemediationHandlers",
    "ActionExecutor",
    "HandlerRegistry",
    "aws_handlers",
    "stub_handlers",
]
