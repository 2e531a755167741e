"""Tests for policy/auth.py - authentication directive generation."""

from policy.auth import compile_auth
from policy.schema import FileAuth, LdapAuth


def _ldap(**kwargs) -> LdapAuth:
    values = {
        'enabled': True,
        'url': 'ldap://ldap.example.com',
        'security': 'STARTTLS',
        'bind_dn': 'cn=httpd,dc=example,dc=com',
        'bind_pw': 'secret',
        'search_base': 'ou=people,dc=example,dc=com',
        'posix_group': False,
    }
    values.update(kwargs)
    return LdapAuth(**values)


class TestCompileAuthEmpty:
    """No enabled method -> empty block."""

    def test_no_methods(self):
        assert compile_auth({}) == ""

    def test_all_disabled(self):
        methods = {'file': FileAuth(enabled=False), 'ldap': LdapAuth(enabled=False)}
        assert compile_auth(methods) == ""


class TestFileAuth:
    """Test digest file directives."""

    def test_file_block(self):
        block = compile_auth({'file': FileAuth(enabled=True, user_file='/etc/apache2/users.digest')})

        assert block == (
            'AuthType Digest\n'
            'AuthName "Restricted"\n'
            'AuthDigestProvider file\n'
            'AuthUserFile "/etc/apache2/users.digest"\n'
        )

    def test_custom_realm(self):
        block = compile_auth({'file': FileAuth(enabled=True, user_file='/u')}, realm='Pulp API')
        assert 'AuthName "Pulp API"' in block


class TestLdapAuth:
    """Test LDAP directives."""

    def test_ldap_block_posix_group(self):
        block = compile_auth({'ldap': _ldap(posix_group=True)})

        assert block.splitlines() == [
            'AuthType Basic',
            'AuthName "Restricted"',
            'AuthBasicProvider ldap',
            'AuthLDAPURL "ldap://ldap.example.com/ou=people,dc=example,dc=com?uid" STARTTLS',
            'AuthLDAPBindDN "cn=httpd,dc=example,dc=com"',
            'AuthLDAPBindPassword "secret"',
            'AuthLDAPGroupAttributeIsDN off',
            'AuthLDAPGroupAttribute memberUid',
        ]

    def test_ldap_group_of_names(self):
        """Without posix_group, membership is checked by member DN."""
        block = compile_auth({'ldap': _ldap(posix_group=False)})

        assert 'AuthLDAPGroupAttributeIsDN on' in block
        assert 'AuthLDAPGroupAttribute member\n' in block
        assert 'memberUid' not in block

    def test_ldap_no_security_mode(self):
        block = compile_auth({'ldap': _ldap(security='NONE')})
        assert 'AuthLDAPURL "ldap://ldap.example.com/ou=people,dc=example,dc=com?uid"\n' in block

    def test_ldap_anonymous_bind(self):
        block = compile_auth({'ldap': _ldap(bind_dn='', bind_pw='')})
        assert 'AuthLDAPBindDN' not in block
        assert 'AuthLDAPBindPassword' not in block

    def test_quotes_escaped(self):
        block = compile_auth({'ldap': _ldap(bind_pw='pa"ss')})
        assert 'AuthLDAPBindPassword "pa\\"ss"' in block


class TestOrdering:
    """file always precedes ldap, whatever the mapping order."""

    def test_both_methods_file_first(self):
        methods = {
            'ldap': _ldap(posix_group=True),
            'file': FileAuth(enabled=True, user_file='/etc/apache2/users.digest'),
        }
        lines = compile_auth(methods).splitlines()

        assert lines[0] == 'AuthType Digest'
        assert lines.index('AuthDigestProvider file') < lines.index('AuthLDAPGroupAttributeIsDN off')
        # Digest owns authentication; LDAP only serves group checks
        assert 'AuthBasicProvider ldap' not in lines

    def test_deterministic_across_mapping_order(self):
        file_auth = FileAuth(enabled=True, user_file='/u')
        ldap_auth = _ldap()
        first = compile_auth({'file': file_auth, 'ldap': ldap_auth})
        second = compile_auth({'ldap': ldap_auth, 'file': file_auth})

        assert first == second
        assert first.encode() == compile_auth({'file': file_auth, 'ldap': ldap_auth}).encode()
