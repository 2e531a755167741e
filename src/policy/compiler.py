"""Policy compilation entry point.

Resolution order:
1. Default policy (policy.schema.DEFAULT_POLICY, or caller-supplied defaults)
2. Override merged on top (policy.merge)
3. Validation of the merged document (hard stop on failure)
4. Auth and limit blocks compiled independently

Either block may come back empty. That is a valid outcome: the caller
applies its fallback (see provision.fallback_limit_block).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from policy.auth import compile_auth
from policy.limits import compile_limits
from policy.merge import merge
from policy.schema import Policy, default_policy
from policy.validator import validate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledOutput:
    """Generated directive blocks ("" means nothing generated)."""
    auth_block: str
    limit_block: str

    @property
    def auth_empty(self) -> bool:
        return not self.auth_block

    @property
    def limit_empty(self) -> bool:
        return not self.limit_block

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            'auth_block': self.auth_block,
            'limit_block': self.limit_block,
        }


def validate_policy(override: Optional[dict] = None, defaults: Optional[dict] = None) -> Policy:
    """Merge override onto defaults and validate.

    Args:
        override: Partial policy document (None for defaults only)
        defaults: Base policy document (default: DEFAULT_POLICY)

    Returns:
        Typed Policy

    Raises:
        ValidationError: If the merged policy is invalid
    """
    base = defaults if defaults is not None else default_policy()
    document = merge(base, override)
    validate(document)
    return Policy.from_dict(document)


def compile_policy(
    override: Optional[dict] = None,
    defaults: Optional[dict] = None,
    realm: Optional[str] = None,
) -> CompiledOutput:
    """Compile a policy override into auth and limit blocks.

    Args:
        override: Partial policy document (None for defaults only)
        defaults: Base policy document (default: DEFAULT_POLICY)
        realm: AuthName for the auth block

    Returns:
        CompiledOutput with both blocks

    Raises:
        ValidationError: If the merged policy is invalid; no output is produced
    """
    policy = validate_policy(override, defaults)

    output = CompiledOutput(
        auth_block=compile_auth(policy.methods, realm=realm),
        limit_block=compile_limits(policy.limits),
    )
    logger.debug(
        "Compiled policy: auth=%s limits=%s",
        'empty' if output.auth_empty else 'ok',
        'empty' if output.limit_empty else 'ok',
    )
    return output
