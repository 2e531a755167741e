"""Access-control policy compiler for Apache httpd.

Merges a policy override onto the default policy, validates it, and compiles
auth and limit directive blocks.
"""

from policy.auth import compile_auth
from policy.compiler import CompiledOutput, compile_policy, validate_policy
from policy.limits import compile_limits
from policy.merge import merge
from policy.schema import (
    DEFAULT_POLICY,
    FileAuth,
    LdapAuth,
    LimitSpec,
    Policy,
    default_policy,
)
from policy.validator import ValidationError, validate

__all__ = [
    'CompiledOutput',
    'DEFAULT_POLICY',
    'FileAuth',
    'LdapAuth',
    'LimitSpec',
    'Policy',
    'ValidationError',
    'compile_auth',
    'compile_limits',
    'compile_policy',
    'default_policy',
    'merge',
    'validate',
    'validate_policy',
]
