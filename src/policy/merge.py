"""Deep merge of a policy override onto a base policy.

Merge order: base -> override. Mappings merge key by key; any other value in
the override (lists, strings, None, booleans) replaces the base value. An
operation list granted to a principal is therefore replaced wholesale, never
concatenated.

No validation happens here; merge is total over any input.
"""

import copy
from typing import Any


def merge(base: Any, override: Any) -> Any:
    """Merge override onto base, returning a new value.

    Args:
        base: Base policy document (usually the default policy)
        override: Partial policy document; None means no override

    Returns:
        New merged document sharing no containers with either input
    """
    if override is None:
        return copy.deepcopy(base)
    if not isinstance(base, dict) or not isinstance(override, dict):
        return copy.deepcopy(override)

    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result
