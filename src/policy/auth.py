"""Authentication directive generation.

Produces the auth block: AuthType/AuthName header followed by one directive
group per enabled method, in METHOD_KINDS order (file, then ldap). Order is
fixed regardless of mapping order, so the same input always yields the same
bytes.

AuthType is Digest when file auth is enabled (the digest user file cannot
serve Basic), Basic otherwise. LDAP group checks still apply under Digest
since they only compare the authenticated username.
"""

from typing import Optional

from policy.schema import METHOD_KINDS, FileAuth, LdapAuth

DEFAULT_REALM = 'Restricted'


def _quote(value: str) -> str:
    """Quote a directive argument."""
    escaped = value.replace('\\', '\\\\').replace('"', '\\"')
    return f'"{escaped}"'


def _file_directives(method: FileAuth) -> list[str]:
    return [
        "AuthDigestProvider file",
        f"AuthUserFile {_quote(method.user_file)}",
    ]


def _ldap_url(method: LdapAuth) -> str:
    """Build the AuthLDAPURL value: url/search_base?uid."""
    url = method.url.rstrip('/')
    if method.search_base:
        url = f"{url}/{method.search_base}"
    return f"{url}?uid"


def _ldap_directives(method: LdapAuth, basic_provider: bool) -> list[str]:
    lines = []
    if basic_provider:
        lines.append("AuthBasicProvider ldap")

    url_line = f"AuthLDAPURL {_quote(_ldap_url(method))}"
    if method.security and method.security != 'NONE':
        url_line += f" {method.security}"
    lines.append(url_line)

    if method.bind_dn:
        lines.append(f"AuthLDAPBindDN {_quote(method.bind_dn)}")
    if method.bind_pw:
        lines.append(f"AuthLDAPBindPassword {_quote(method.bind_pw)}")

    if method.posix_group:
        # posixGroup lists members by uid, not DN
        lines.append("AuthLDAPGroupAttributeIsDN off")
        lines.append("AuthLDAPGroupAttribute memberUid")
    else:
        lines.append("AuthLDAPGroupAttributeIsDN on")
        lines.append("AuthLDAPGroupAttribute member")
    return lines


def compile_auth(methods: dict, realm: Optional[str] = None) -> str:
    """Compile authentication methods into an auth block.

    Args:
        methods: Method kind -> FileAuth/LdapAuth
        realm: AuthName value (default: Restricted)

    Returns:
        Newline-terminated directive block, or "" when no method is enabled
    """
    enabled = [
        kind for kind in METHOD_KINDS
        if kind in methods and methods[kind].enabled
    ]
    if not enabled:
        return ""

    file_enabled = 'file' in enabled
    lines = [
        f"AuthType {'Digest' if file_enabled else 'Basic'}",
        f"AuthName {_quote(realm or DEFAULT_REALM)}",
    ]

    for kind in enabled:
        if kind == 'file':
            lines.extend(_file_directives(methods[kind]))
        elif kind == 'ldap':
            lines.extend(_ldap_directives(methods[kind], basic_provider=not file_enabled))

    return "\n".join(lines) + "\n"
