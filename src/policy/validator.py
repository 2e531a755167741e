"""Policy validation.

Checks a merged policy document before compilation. Checks run in a fixed
order and stop at the first violation:

0. Document shape (only methods/limits, both mappings)
1. Recognized method kinds and fields
2. file.enabled -> user_file is a non-empty absolute path
3. ldap.enabled -> posix_group is a strict boolean, url set, known security mode
4. Limit shape, host keys (address or CIDR) and principal names
5. Operation sets non-empty and drawn from the HTTP method vocabulary

Error codes:
- E100: document shape
- E101: unknown method kind or field
- E102: wrong field type
- E103: missing or invalid required field for an enabled method
- E104: invalid host address/CIDR
- E105: empty or out-of-vocabulary operation set
- E106: user name or group DN unusable in a Require line
"""

import ipaddress
import posixpath
from typing import Any

from policy.schema import (
    DEFAULTS_TOKEN,
    HTTP_METHODS,
    LDAP_SECURITY_MODES,
    LIMIT_KEYS,
    METHOD_FIELDS,
    METHOD_KINDS,
    POLICY_KEYS,
    PRINCIPAL_CLASSES,
)


class ValidationError(Exception):
    """Policy violation with the offending field path."""

    def __init__(self, code: str, path: str, reason: str):
        self.code = code
        self.path = path
        self.reason = reason
        super().__init__(f"{code}: {path}: {reason}")


def _type_name(value: Any) -> str:
    return type(value).__name__


def _check_shape(document: Any) -> None:
    if not isinstance(document, dict):
        raise ValidationError("E100", "<root>", f"expected mapping, got {_type_name(document)}")

    for key in document:
        if key not in POLICY_KEYS:
            raise ValidationError("E100", str(key), "unknown top-level key")

    for key in POLICY_KEYS:
        if not isinstance(document.get(key), dict):
            raise ValidationError(
                "E100", key, f"expected mapping, got {_type_name(document.get(key))}"
            )


def _check_method_kinds(methods: dict) -> None:
    for kind, config in methods.items():
        if kind not in METHOD_KINDS:
            raise ValidationError(
                "E101", f"methods.{kind}",
                f"unknown method kind (expected one of: {', '.join(METHOD_KINDS)})",
            )
        if not isinstance(config, dict):
            raise ValidationError(
                "E102", f"methods.{kind}", f"expected mapping, got {_type_name(config)}"
            )
        for name in config:
            if name not in METHOD_FIELDS[kind]:
                raise ValidationError("E101", f"methods.{kind}.{name}", "unknown field")
        if 'enabled' in config and not isinstance(config['enabled'], bool):
            raise ValidationError(
                "E102", f"methods.{kind}.enabled",
                f"expected boolean, got {_type_name(config['enabled'])}",
            )


def _enabled(methods: dict, kind: str) -> bool:
    return methods.get(kind, {}).get('enabled') is True


def _check_file_method(methods: dict) -> None:
    if not _enabled(methods, 'file'):
        return
    user_file = methods['file'].get('user_file')
    if not isinstance(user_file, str) or not user_file:
        raise ValidationError(
            "E103", "methods.file.user_file", "required when file auth is enabled"
        )
    if not posixpath.isabs(user_file):
        raise ValidationError(
            "E103", "methods.file.user_file", f"must be an absolute path, got '{user_file}'"
        )


def _check_ldap_method(methods: dict) -> None:
    if not _enabled(methods, 'ldap'):
        return
    ldap = methods['ldap']

    if 'posix_group' not in ldap:
        raise ValidationError(
            "E103", "methods.ldap.posix_group", "required when ldap auth is enabled"
        )
    if not isinstance(ldap['posix_group'], bool):
        raise ValidationError(
            "E102", "methods.ldap.posix_group",
            f"expected boolean, got {_type_name(ldap['posix_group'])}",
        )

    url = ldap.get('url')
    if not isinstance(url, str) or not url:
        raise ValidationError("E103", "methods.ldap.url", "required when ldap auth is enabled")

    for name in ('bind_dn', 'bind_pw', 'search_base'):
        if ldap.get(name) is not None and not isinstance(ldap[name], str):
            raise ValidationError(
                "E102", f"methods.ldap.{name}", f"expected string, got {_type_name(ldap[name])}"
            )

    security = ldap.get('security')
    if security and security not in LDAP_SECURITY_MODES:
        raise ValidationError(
            "E103", "methods.ldap.security",
            f"unknown mode '{security}' (expected one of: {', '.join(LDAP_SECURITY_MODES)})",
        )


def _check_limit_shape(limits: dict) -> None:
    for key in limits:
        if key not in LIMIT_KEYS:
            raise ValidationError("E100", f"limits.{key}", "unknown key")

    for principal_class in PRINCIPAL_CLASSES:
        entries = limits.get(principal_class)
        if entries is not None and not isinstance(entries, dict):
            raise ValidationError(
                "E100", f"limits.{principal_class}",
                f"expected mapping, got {_type_name(entries)}",
            )

    for host in limits.get('hosts') or {}:
        try:
            ipaddress.ip_network(str(host), strict=False)
        except ValueError:
            raise ValidationError(
                "E104", f"limits.hosts.{host}", "not a valid IP address or CIDR block"
            )

    _check_principal_names(limits)


def _check_principal_names(limits: dict) -> None:
    """Reject names that would break out of a Require line."""
    for name in limits.get('users') or {}:
        path = f"limits.users.{name}"
        if not isinstance(name, str) or not name:
            raise ValidationError("E106", path, "user name must be a non-empty string")
        if not name.isprintable() or any(c.isspace() for c in name):
            raise ValidationError(
                "E106", path, "user name must not contain whitespace or control characters"
            )

    for name in limits.get('ldap_groups') or {}:
        path = f"limits.ldap_groups.{name}"
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("E106", path, "group DN must be a non-empty string")
        # isprintable() is False for CR, LF, tab and other control characters
        if not name.isprintable():
            raise ValidationError("E106", path, "group DN must not contain control characters")


def _check_method_list(path: str, value: Any) -> None:
    if not isinstance(value, list):
        raise ValidationError(
            "E105", path,
            f"expected list of HTTP methods or '{DEFAULTS_TOKEN}', got {_type_name(value)}",
        )
    if not value:
        raise ValidationError("E105", path, "operation set is empty")
    for method in value:
        if method not in HTTP_METHODS:
            raise ValidationError("E105", path, f"unknown HTTP method '{method}'")


def _check_operation_sets(limits: dict) -> None:
    # limits.defaults backs every "defaults" reference
    _check_method_list("limits.defaults", limits.get('defaults'))

    for principal_class in PRINCIPAL_CLASSES:
        for name, value in (limits.get(principal_class) or {}).items():
            if value is None or value == DEFAULTS_TOKEN:
                continue
            _check_method_list(f"limits.{principal_class}.{name}", value)


def validate(document: Any) -> None:
    """Validate a merged policy document.

    Args:
        document: Policy document (merged with defaults)

    Raises:
        ValidationError: On the first violation found
    """
    _check_shape(document)

    methods = document['methods']
    _check_method_kinds(methods)
    _check_file_method(methods)
    _check_ldap_method(methods)

    limits = document['limits']
    _check_limit_shape(limits)
    _check_operation_sets(limits)
