"""Shared pytest fixtures for httpd-policy tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))


@pytest.fixture
def site_config_dir(tmp_path):
    """Create temporary site-config directory structure.

    Creates minimal site-config with:
    - site.yaml (server settings, conf_dir under tmp_path)
    - policy.yaml (file auth + hosts/users/ldap_groups)
    """
    etc = tmp_path / 'site-config'
    etc.mkdir()
    conf_dir = tmp_path / 'auth.d'

    (etc / 'site.yaml').write_text(f"""
server:
  conf_dir: {conf_dir}
  realm: Example
  server_name: web1.example.com
  file_mode: "0640"
  listen_port: 8443
""")

    (etc / 'policy.yaml').write_text("""
methods:
  file:
    enabled: true
    user_file: /etc/apache2/users.digest
limits:
  hosts:
    10.0.0.0/8: defaults
  users:
    alice: [GET, POST, PUT, DELETE]
  ldap_groups:
    "cn=ops,ou=groups,dc=example,dc=com": defaults
""")

    return etc


@pytest.fixture
def ldap_override():
    """Override enabling LDAP auth with POSIX groups."""
    return {
        'methods': {
            'ldap': {
                'enabled': True,
                'url': 'ldap://ldap.example.com',
                'security': 'STARTTLS',
                'bind_dn': 'cn=httpd,dc=example,dc=com',
                'bind_pw': 'secret',
                'search_base': 'ou=people,dc=example,dc=com',
                'posix_group': True,
            },
        },
    }
