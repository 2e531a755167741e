"""HTTP method limit generation.

Principals (hosts, users, LDAP groups) are grouped by their resolved
operation set; each group becomes one <Limit> block whose Require lines sit
inside <RequireAny>, so matching any one principal class is enough. A closing
<LimitExcept> denies every method no group grants.

Example for defaults=[GET, POST, PUT], hosts={127.0.0.1: defaults},
users={alice: [GET, POST, PUT, DELETE]}:

    <Limit GET POST PUT>
        <RequireAny>
            Require ip 127.0.0.1
        </RequireAny>
    </Limit>
    <Limit GET POST PUT DELETE>
        <RequireAny>
            Require user alice
        </RequireAny>
    </Limit>
    <LimitExcept GET POST PUT DELETE>
        Require all denied
    </LimitExcept>
"""

import logging

from policy.schema import HTTP_METHODS, PRINCIPAL_CLASSES, VALID_USER, LimitSpec, canonical_methods

logger = logging.getLogger(__name__)

INDENT = '    '


def require_line(principal_class: str, name: str) -> str:
    """Build the Require directive for one principal."""
    if principal_class == 'hosts':
        return f"Require ip {name}"
    if principal_class == 'users':
        if name == VALID_USER:
            return "Require valid-user"
        return f"Require user {name}"
    if principal_class == 'ldap_groups':
        return f"Require ldap-group {name}"
    raise ValueError(f"Unknown principal class: {principal_class}")


def group_principals(spec: LimitSpec) -> dict:
    """Group principals by resolved operation set.

    Returns:
        Dict of operation tuple -> list of (principal_class, name), with keys
        in canonical method order and principals ordered by class, then name
    """
    groups: dict = {}
    for principal_class in PRINCIPAL_CLASSES:
        for name in sorted(spec.principals(principal_class)):
            methods = spec.principals(principal_class)[name]
            groups.setdefault(methods, []).append((principal_class, name))

    def sort_key(methods):
        return [HTTP_METHODS.index(m) for m in methods]

    return {methods: groups[methods] for methods in sorted(groups, key=sort_key)}


def render_limit(methods: tuple, requires: list[str]) -> list[str]:
    """Render one <Limit> block with its Require lines ORed."""
    lines = [f"<Limit {' '.join(methods)}>", f"{INDENT}<RequireAny>"]
    lines.extend(f"{INDENT * 2}{line}" for line in requires)
    lines.append(f"{INDENT}</RequireAny>")
    lines.append("</Limit>")
    return lines


def render_limit_except(methods) -> list[str]:
    """Render the closing block that denies every method not granted."""
    return [
        f"<LimitExcept {' '.join(canonical_methods(methods))}>",
        f"{INDENT}Require all denied",
        "</LimitExcept>",
    ]


def compile_limits(spec: LimitSpec) -> str:
    """Compile a LimitSpec into a limit block.

    Args:
        spec: Validated limit spec with resolved operation sets

    Returns:
        Newline-terminated directive block, or "" when no principal is granted
    """
    if spec.is_empty:
        return ""

    groups = group_principals(spec)
    lines: list[str] = []
    granted: set = set()
    for methods, principals in groups.items():
        lines.extend(render_limit(methods, [require_line(c, n) for c, n in principals]))
        granted.update(methods)

    lines.extend(render_limit_except(granted))
    logger.debug("Compiled %d limit group(s) covering %s", len(groups), ' '.join(canonical_methods(granted)))
    return "\n".join(lines) + "\n"
