#!/usr/bin/env python3
"""CLI entry point for httpd-policy.

Usage:
    httpd-policy validate [--policy FILE]
    httpd-policy compile [--policy FILE] [--json]
    httpd-policy apply [--policy FILE] [--dry-run] [--json]

The policy file defaults to <site-config>/policy.yaml. Server settings
(conf_dir, realm, ownership) come from <site-config>/site.yaml.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from config import POLICY_FILE, ConfigError, get_site_config_dir, load_policy_override, load_server_settings
from policy.compiler import compile_policy, validate_policy
from policy.schema import PRINCIPAL_CLASSES
from policy.validator import ValidationError
from provision import provision

logger = logging.getLogger(__name__)


def _resolve_paths(args) -> tuple[Path, Path]:
    """Resolve (site_config_dir, policy_path) from arguments.

    Raises:
        ConfigError: If no site-config directory can be found
    """
    etc = Path(args.etc) if args.etc else get_site_config_dir()
    policy_path = Path(args.policy) if args.policy else etc / POLICY_FILE
    return etc, policy_path


def cmd_validate(args) -> int:
    """Validate the merged policy."""
    _etc, policy_path = _resolve_paths(args)
    override = load_policy_override(policy_path)
    policy = validate_policy(override)

    enabled = [kind for kind, method in policy.methods.items() if method.enabled]
    print(f"Policy valid: {policy_path}")
    print(f"  Auth methods: {', '.join(enabled) or '(none)'}")
    for principal_class in PRINCIPAL_CLASSES:
        print(f"  {principal_class}: {len(policy.limits.principals(principal_class))}")
    return 0


def cmd_compile(args) -> int:
    """Compile the policy and print both blocks."""
    etc, policy_path = _resolve_paths(args)
    settings = load_server_settings(etc)
    output = compile_policy(load_policy_override(policy_path), realm=settings.realm)

    if args.json:
        print(json.dumps(output.to_dict(), indent=2))
        return 0

    print("# auth block")
    print(output.auth_block if not output.auth_empty else "# (empty: no authentication method enabled)\n")
    print("# limit block")
    print(output.limit_block if not output.limit_empty else "# (empty: fallback limit applies)\n")
    return 0


def cmd_apply(args) -> int:
    """Compile the policy and write it to the configured conf_dir."""
    etc, policy_path = _resolve_paths(args)
    settings = load_server_settings(etc)
    if args.conf_dir:
        settings.conf_dir = Path(args.conf_dir)

    logger.info(f"Compiling policy from {policy_path}")
    output = compile_policy(load_policy_override(policy_path), realm=settings.realm)
    result = provision(output, settings, dry_run=args.dry_run)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    elif result.success:
        logger.info(result.message)
        for path in result.changed:
            print(f"  {'would write' if result.dry_run else 'wrote'}: {path}")
    else:
        logger.error(result.message)

    return 0 if result.success else 1


def main(argv: Optional[list] = None) -> int:
    """CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        prog="httpd-policy",
        description="Compile access-control policy into Apache httpd directives",
    )
    parser.add_argument(
        "--etc",
        help="Site-config directory (default: $HTTPD_POLICY_ETC, sibling, FHS)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    sub = parser.add_subparsers(dest="action")

    validate_parser = sub.add_parser("validate", help="Validate the merged policy")
    validate_parser.add_argument("--policy", help="Policy override file")
    validate_parser.set_defaults(func=cmd_validate)

    compile_parser = sub.add_parser("compile", help="Print compiled directive blocks")
    compile_parser.add_argument("--policy", help="Policy override file")
    compile_parser.add_argument("--json", action="store_true", help="Output blocks as JSON")
    compile_parser.set_defaults(func=cmd_compile)

    apply_parser = sub.add_parser("apply", help="Compile and write directive blocks")
    apply_parser.add_argument("--policy", help="Policy override file")
    apply_parser.add_argument("--conf-dir", help="Override server.conf_dir from site.yaml")
    apply_parser.add_argument("--dry-run", action="store_true", help="Preview without writing")
    apply_parser.add_argument("--json", action="store_true", help="Output result as JSON")
    apply_parser.set_defaults(func=cmd_apply)

    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if not args.action:
        parser.print_help()
        return 1

    try:
        rc: int = args.func(args)
        return rc
    except ValidationError as e:
        logger.error(f"Invalid policy at {e.path}: {e.reason}")
        return 1
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
