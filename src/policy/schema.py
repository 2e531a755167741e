"""Policy vocabulary, default policy and typed model.

A policy document is a nested mapping with two sections:
- methods: authentication methods keyed by kind (file, ldap)
- limits: operation sets granted to hosts, users and LDAP groups

Documents are merged and validated as plain dicts, then converted to the
frozen dataclasses below for compilation.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Optional, Union

# Recognized authentication method kinds, in compile order
METHOD_KINDS = ('file', 'ldap')

# Known fields per method kind
METHOD_FIELDS = {
    'file': ('enabled', 'user_file'),
    'ldap': ('enabled', 'url', 'security', 'bind_dn', 'bind_pw', 'search_base', 'posix_group'),
}

# AuthLDAPURL connection modes
LDAP_SECURITY_MODES = ('NONE', 'SSL', 'TLS', 'STARTTLS')

# Operation vocabulary in canonical order (<Limit> accepted methods)
HTTP_METHODS = (
    'GET', 'POST', 'PUT', 'DELETE', 'HEAD', 'OPTIONS', 'PATCH', 'CONNECT',
    'TRACE', 'PROPFIND', 'PROPPATCH', 'MKCOL', 'COPY', 'MOVE', 'LOCK', 'UNLOCK',
)

# Token that points a principal at limits.defaults
DEFAULTS_TOKEN = 'defaults'

# Username meaning "any authenticated user"
VALID_USER = 'valid-user'

# Principal classes, in compile order
PRINCIPAL_CLASSES = ('hosts', 'users', 'ldap_groups')

LIMIT_KEYS = ('defaults',) + PRINCIPAL_CLASSES

POLICY_KEYS = ('methods', 'limits')

DEFAULT_POLICY: dict = {
    'methods': {
        'file': {
            'enabled': False,
            'user_file': '',
        },
        'ldap': {
            'enabled': False,
            'url': '',
            'security': 'STARTTLS',
            'bind_dn': '',
            'bind_pw': '',
            'search_base': '',
            'posix_group': False,
        },
    },
    'limits': {
        'defaults': ['GET', 'POST', 'PUT'],
        'hosts': {'127.0.0.1': DEFAULTS_TOKEN},
        'users': {},
        'ldap_groups': {},
    },
}


def default_policy() -> dict:
    """Return a fresh copy of the default policy document."""
    return copy.deepcopy(DEFAULT_POLICY)


def canonical_methods(methods) -> tuple:
    """Deduplicate and order operation names by the vocabulary."""
    wanted = set(methods)
    return tuple(m for m in HTTP_METHODS if m in wanted)


@dataclass(frozen=True)
class FileAuth:
    """Digest authentication against a local user file."""
    enabled: bool = False
    user_file: str = ''

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'FileAuth':
        """Create FileAuth from dictionary."""
        data = data or {}
        return cls(
            enabled=data.get('enabled', False),
            user_file=data.get('user_file') or '',
        )


@dataclass(frozen=True)
class LdapAuth:
    """LDAP authentication and group lookup.

    Attributes:
        enabled: Emit LDAP directives
        url: LDAP server URL (e.g., ldap://ldap.example.com)
        security: AuthLDAPURL connection mode (NONE, SSL, TLS, STARTTLS)
        bind_dn: DN used to bind for searches
        bind_pw: Password for bind_dn
        search_base: Base DN for user searches
        posix_group: Check membership via posixGroup memberUid instead of groupOfNames member
    """
    enabled: bool = False
    url: str = ''
    security: str = 'STARTTLS'
    bind_dn: str = ''
    bind_pw: str = ''
    search_base: str = ''
    posix_group: bool = False

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'LdapAuth':
        """Create LdapAuth from dictionary."""
        data = data or {}
        return cls(
            enabled=data.get('enabled', False),
            url=data.get('url') or '',
            security=data.get('security') or '',
            bind_dn=data.get('bind_dn') or '',
            bind_pw=data.get('bind_pw') or '',
            search_base=data.get('search_base') or '',
            posix_group=data.get('posix_group', False),
        )


AuthMethodConfig = Union[FileAuth, LdapAuth]

_METHOD_TYPES = {
    'file': FileAuth,
    'ldap': LdapAuth,
}


def resolve_methods(value: Any, defaults: tuple) -> tuple:
    """Resolve a principal value to its operation set.

    "defaults" and None point at limits.defaults; lists are used verbatim.
    """
    if value is None or value == DEFAULTS_TOKEN:
        return defaults
    return canonical_methods(value)


@dataclass(frozen=True)
class LimitSpec:
    """Operation sets granted per principal class.

    Principal maps hold resolved, canonical operation tuples.
    """
    defaults: tuple = ()
    hosts: dict = field(default_factory=dict)
    users: dict = field(default_factory=dict)
    ldap_groups: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'LimitSpec':
        """Create LimitSpec from dictionary, resolving "defaults" indirection."""
        data = data or {}
        defaults = canonical_methods(data.get('defaults') or [])
        resolved = {}
        for principal_class in PRINCIPAL_CLASSES:
            entries = data.get(principal_class) or {}
            resolved[principal_class] = {
                str(name): resolve_methods(value, defaults)
                for name, value in entries.items()
            }
        return cls(defaults=defaults, **resolved)

    def principals(self, principal_class: str) -> dict:
        """Get the principal map for a class (hosts, users, ldap_groups)."""
        result: dict = getattr(self, principal_class)
        return result

    @property
    def is_empty(self) -> bool:
        """True if no principal is granted anything."""
        return not any(self.principals(c) for c in PRINCIPAL_CLASSES)


@dataclass(frozen=True)
class Policy:
    """Merged, validated policy."""
    methods: dict
    limits: LimitSpec

    @classmethod
    def from_dict(cls, data: dict) -> 'Policy':
        """Create Policy from a validated document."""
        methods_data = data.get('methods') or {}
        methods = {
            kind: _METHOD_TYPES[kind].from_dict(methods_data.get(kind))
            for kind in METHOD_KINDS
            if kind in methods_data
        }
        return cls(
            methods=methods,
            limits=LimitSpec.from_dict(data.get('limits')),
        )
