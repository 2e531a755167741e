"""Write compiled policy blocks for Apache httpd.

Consumes a CompiledOutput and writes it under ServerSettings.conf_dir:
- auth.conf: authentication directives (comment-only when no method is enabled)
- limits.conf: method limits, or the fallback limit when none were compiled
- .policy-applied.json: marker rewritten whenever a file changes; the httpd
  side watches it to trigger a graceful reload

Fallback limit: GET, POST, PUT and DELETE from loopback and from this host's
canonical name only, everything else denied. It intentionally grants more than
the default policy (DELETE, canonical name); keep the two separate.
"""

import json
import logging
import os
import shutil
import socket
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from config import ServerSettings
from policy.compiler import CompiledOutput
from policy.limits import render_limit, render_limit_except

logger = logging.getLogger(__name__)

AUTH_FILE = 'auth.conf'
LIMITS_FILE = 'limits.conf'
MARKER_FILE = '.policy-applied.json'

FALLBACK_METHODS = ('GET', 'POST', 'PUT', 'DELETE')
LOOPBACK_ADDRESSES = ('127.0.0.1', '::1')

HEADER = "# Generated by httpd-policy. Do not edit.\n"
NO_AUTH_COMMENT = "# No authentication method enabled.\n"


class ProvisionError(Exception):
    """Error writing generated configuration."""


@dataclass
class ProvisionResult:
    """Result of writing policy blocks."""
    success: bool
    message: str = ''
    duration: float = 0.0
    changed: list = field(default_factory=list)
    used_limit_fallback: bool = False
    auth_written: bool = False
    dry_run: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            'success': self.success,
            'message': self.message,
            'duration_seconds': round(self.duration, 3),
            'changed': [str(p) for p in self.changed],
            'used_limit_fallback': self.used_limit_fallback,
            'auth_written': self.auth_written,
            'dry_run': self.dry_run,
        }


def fallback_limit_block(server_name: Optional[str] = None) -> str:
    """Build the restrictive limit block used when nothing was compiled.

    Args:
        server_name: Canonical host name (default: socket.getfqdn())
    """
    fqdn = server_name or socket.getfqdn()
    requires = [f"Require ip {' '.join(LOOPBACK_ADDRESSES)}"]
    if fqdn:
        requires.append(f"Require host {fqdn}")
    lines = render_limit(FALLBACK_METHODS, requires)
    lines.extend(render_limit_except(FALLBACK_METHODS))
    return "\n".join(lines) + "\n"


def render_files(output: CompiledOutput, settings: ServerSettings) -> dict:
    """Render file contents for both blocks, applying fallbacks.

    Returns:
        Dict of filename -> content
    """
    if output.auth_empty:
        auth_content = HEADER + NO_AUTH_COMMENT
    else:
        auth_content = HEADER + output.auth_block

    if output.limit_empty:
        limit_content = HEADER + "# Fallback: no principals in policy.\n"
        limit_content += fallback_limit_block(settings.server_name)
    else:
        limit_content = HEADER + output.limit_block

    return {
        AUTH_FILE: auth_content,
        LIMITS_FILE: limit_content,
    }


def _find_changed(conf_dir: Path, files: dict) -> list:
    """List target paths whose content differs from the rendered files.

    Raises:
        ProvisionError: If an existing target cannot be read
    """
    changed = []
    for name, content in files.items():
        path = conf_dir / name
        try:
            if path.exists() and path.read_text(encoding='utf-8') == content:
                logger.debug(f"Unchanged: {path}")
                continue
        except (OSError, UnicodeDecodeError) as e:
            raise ProvisionError(f"Failed to read {path}: {e}") from e
        changed.append(path)
    return changed


def _stage(path: Path, content: str, settings: ServerSettings) -> str:
    """Write content to a temp file beside path, applying mode and ownership.

    Returns:
        Temp file name, renamed onto path by _write_all()
    """
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(content)
        os.chmod(tmp_name, settings.file_mode)
        if settings.owner or settings.group:
            shutil.chown(tmp_name, user=settings.owner or None, group=settings.group or None)
    except OSError as e:
        os.unlink(tmp_name)
        raise ProvisionError(f"Failed to write {path}: {e}") from e
    except LookupError as e:
        # shutil.chown raises LookupError for unknown user/group
        os.unlink(tmp_name)
        raise ProvisionError(f"Failed to set ownership on {path}: {e}") from e
    return tmp_name


def _write_all(files: dict, changed: list, settings: ServerSettings) -> None:
    """Stage every changed file, then rename them into place.

    Nothing is renamed until all temp files are staged, so a failed write
    leaves the previous auth.conf and limits.conf together.
    """
    staged: list = []
    try:
        for path in changed:
            staged.append((_stage(path, files[path.name], settings), path))
        while staged:
            tmp_name, path = staged[0]
            os.replace(tmp_name, path)
            staged.pop(0)
            logger.info(f"Wrote {path}")
    except OSError as e:
        raise ProvisionError(f"Failed to write {staged[0][1]}: {e}") from e
    finally:
        for tmp_name, _path in staged:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)


def _write_marker(conf_dir: Path, changed: list, output: CompiledOutput, settings: ServerSettings) -> Path:
    """Write the applied marker that signals httpd to reload."""
    marker_path = conf_dir / MARKER_FILE
    marker = {
        'status': 'applied',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'changed': [p.name for p in changed],
        'auth_empty': output.auth_empty,
        'limit_fallback': output.limit_empty,
        'server': settings.passthrough(),
    }
    try:
        with open(marker_path, 'w', encoding='utf-8') as f:
            json.dump(marker, f, indent=2)
    except OSError as e:
        raise ProvisionError(f"Failed to write {marker_path}: {e}") from e
    logger.info(f"Wrote policy-applied marker to {marker_path}")
    return marker_path


def provision(output: CompiledOutput, settings: ServerSettings, dry_run: bool = False) -> ProvisionResult:
    """Write compiled blocks to settings.conf_dir.

    Args:
        output: Compiled auth/limit blocks
        settings: Target directory, ownership and mode
        dry_run: Report what would change without writing

    Returns:
        ProvisionResult; success=False on filesystem errors
    """
    start = time.time()
    conf_dir = settings.conf_dir
    files = render_files(output, settings)

    try:
        changed = _find_changed(conf_dir, files)
    except ProvisionError as e:
        return ProvisionResult(
            success=False,
            message=str(e),
            duration=time.time() - start,
            dry_run=dry_run,
        )

    result = ProvisionResult(
        success=True,
        changed=changed,
        used_limit_fallback=output.limit_empty,
        auth_written=not output.auth_empty,
        dry_run=dry_run,
    )

    if dry_run:
        result.message = f"Dry-run: {len(changed)} file(s) would change in {conf_dir}"
        result.duration = time.time() - start
        return result

    if not changed:
        result.message = f"Policy unchanged in {conf_dir}"
        result.duration = time.time() - start
        return result

    try:
        conf_dir.mkdir(parents=True, exist_ok=True)
        _write_all(files, changed, settings)
        _write_marker(conf_dir, changed, output, settings)
    except (OSError, ProvisionError) as e:
        return ProvisionResult(
            success=False,
            message=str(e),
            duration=time.time() - start,
        )

    if output.limit_empty:
        logger.warning("No principals in policy; wrote fallback limit (loopback and local host only)")

    result.message = f"Wrote {len(changed)} file(s) to {conf_dir}"
    result.duration = time.time() - start
    return result
