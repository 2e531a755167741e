"""Site configuration for httpd-policy.

Configuration is loaded from site-config YAML files:
- site.yaml: Server settings (conf_dir, realm, ownership, TLS knobs)
- policy.yaml: Access policy override, merged onto the default policy

Resolution order for the site-config directory:
1. $HTTPD_POLICY_ETC environment variable
2. ../site-config/ sibling directory (dev workspace)
3. /usr/local/etc/httpd-policy/ (FHS)

Listen/proxy ports and TLS settings are passed through to the provisioner
untouched; the policy compiler never reads them.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

# Default policy override filename within site-config
POLICY_FILE = 'policy.yaml'

# Default directory for generated auth/limit blocks
DEFAULT_CONF_DIR = '/etc/apache2/auth.d'


class ConfigError(Exception):
    """Configuration error."""


@dataclass
class ServerSettings:
    """Settings for writing generated blocks.

    Attributes:
        conf_dir: Directory receiving auth.conf and limits.conf
        realm: AuthName for the auth block
        owner: File owner for generated files (unchanged if empty)
        group: File group for generated files (unchanged if empty)
        file_mode: Permission bits for generated files
        server_name: Canonical host name for the fallback limit (default: socket.getfqdn())
        listen_port: HTTPS listen port (pass-through)
        proxy_port: Backend proxy port (pass-through)
        ssl_cipher_suite: SSLCipherSuite value (pass-through)
        ssl_protocols: SSLProtocol values (pass-through)
        ssl_verify_client: SSLVerifyClient mode (pass-through)
        ssl_verify_depth: SSLVerifyDepth value (pass-through)
    """
    conf_dir: Path = field(default_factory=lambda: Path(DEFAULT_CONF_DIR))
    realm: str = 'Restricted'
    owner: str = ''
    group: str = ''
    file_mode: int = 0o640
    server_name: str = ''
    listen_port: int = 443
    proxy_port: int = 8080
    ssl_cipher_suite: str = 'HIGH:!aNULL:!MD5'
    ssl_protocols: list = field(default_factory=lambda: ['-all', '+TLSv1.2', '+TLSv1.3'])
    ssl_verify_client: str = 'none'
    ssl_verify_depth: int = 1

    def __post_init__(self):
        if isinstance(self.conf_dir, str):
            self.conf_dir = Path(self.conf_dir)
        if isinstance(self.file_mode, str):
            try:
                self.file_mode = int(self.file_mode, 8)
            except ValueError:
                raise ConfigError(f"Invalid file_mode '{self.file_mode}': expected octal string")

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'ServerSettings':
        """Create ServerSettings from the site.yaml server section."""
        if not data:
            return cls()
        known = cls.__dataclass_fields__
        unknown = sorted(k for k in data if k not in known)
        if unknown:
            raise ConfigError(f"Unknown server setting(s) in site.yaml: {', '.join(unknown)}")
        return cls(**data)

    def passthrough(self) -> dict:
        """Server knobs handed to the httpd side without interpretation."""
        return {
            'listen_port': self.listen_port,
            'proxy_port': self.proxy_port,
            'ssl_cipher_suite': self.ssl_cipher_suite,
            'ssl_protocols': list(self.ssl_protocols),
            'ssl_verify_client': self.ssl_verify_client,
            'ssl_verify_depth': self.ssl_verify_depth,
        }


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping in {path}, got {type(data).__name__}")
    return data


def get_base_dir() -> Path:
    """Get the httpd-policy directory."""
    return Path(__file__).parent.parent  # src/ -> httpd-policy/


def get_site_config_dir() -> Path:
    """Discover site-config directory.

    Resolution order:
    1. $HTTPD_POLICY_ETC environment variable
    2. ../site-config/ sibling directory (dev workspace)
    3. /usr/local/etc/httpd-policy/ (FHS)
    """
    # 1. Environment variable (highest priority)
    if env_path := os.environ.get('HTTPD_POLICY_ETC'):
        path = Path(env_path)
        if path.is_dir():
            return path
        raise ConfigError(f"HTTPD_POLICY_ETC={env_path} does not exist")

    # 2. Sibling directory (dev workspace)
    sibling = get_base_dir().parent / 'site-config'
    if sibling.is_dir():
        return sibling

    # 3. FHS path
    fhs_path = Path('/usr/local/etc/httpd-policy')
    if fhs_path.is_dir():
        return fhs_path

    raise ConfigError(
        "Cannot find site-config directory. "
        "Set HTTPD_POLICY_ETC or clone site-config as sibling directory."
    )


def load_policy_override(path: Path) -> dict:
    """Load a policy override document.

    A missing file means no override (defaults only).
    """
    if not path.exists():
        return {}
    return _parse_yaml(path)


def load_server_settings(site_config_dir: Path) -> ServerSettings:
    """Load ServerSettings from site.yaml (server section)."""
    site_file = site_config_dir / 'site.yaml'
    if not site_file.exists():
        return ServerSettings()
    server = _parse_yaml(site_file).get('server')
    if server is not None and not isinstance(server, dict):
        raise ConfigError(f"'server' in {site_file} must be a mapping")
    return ServerSettings.from_dict(server)
