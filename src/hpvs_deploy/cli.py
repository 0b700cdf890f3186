"""
hpvs_deploy.cli - Command Line Entry Point
============================================

    hpvs-deploy [alpine|fedora|ubuntu] [-c FILE | -f FILE] [-l] [--log-level LEVEL]

Signs an FHE Toolkit image and deploys it to a Hyper Protect Virtual Server.

Exit Codes:
    0    the provisioning request was accepted
    1    the pipeline failed (the message names the failing stage)
    2    invalid command line
    130  interrupted
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from pydantic import ValidationError

from hpvs_deploy import __version__
from hpvs_deploy.core.config import DEFAULT_CONFIG_FILE, get_default_settings, load_config
from hpvs_deploy.core.enums import Platform, SourceMode
from hpvs_deploy.core.exceptions import ConfigurationError, DeployError
from hpvs_deploy.logging import bind_context, configure_logging
from hpvs_deploy.pipeline.orchestrator import DeploymentOrchestrator
from hpvs_deploy.wizard import create_config_file


_USAGE_GUIDANCE = f"""\
Check the configuration file (default: ./{DEFAULT_CONFIG_FILE}):
  - registry.namespace, registry.username and registry.password are required
  - trust.root_passphrase is required
  - vendor_key.* must name readable GPG key files
Run 'hpvs-deploy -c NEW_FILE.yaml' to create a configuration interactively,
or 'hpvs-deploy -h' for all options."""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hpvs-deploy",
        description=(
            "Sign an FHE Toolkit container image and deploy it to a "
            "Hyper Protect Virtual Server instance in IBM Cloud."
        ),
    )
    parser.add_argument(
        "platform",
        nargs="?",
        default=None,
        help="Toolkit variant to deploy: alpine, fedora or ubuntu (default: fedora)",
    )

    config_group = parser.add_mutually_exclusive_group()
    config_group.add_argument(
        "-c",
        dest="create_config",
        metavar="FILE",
        help="Create a new configuration file with an interactive wizard, then deploy with it",
    )
    config_group.add_argument(
        "-f",
        dest="config_file",
        metavar="FILE",
        help=f"Configuration file to use (default: {DEFAULT_CONFIG_FILE})",
    )

    parser.add_argument(
        "-l",
        dest="local_build",
        action="store_true",
        help="Deploy a locally built image instead of the pre-built ibmcom image",
    )
    parser.add_argument("--log-level", help="Logging level (default: HPVS_DEPLOY_LOG_LEVEL or INFO)")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Parse `argv`, run one deployment and return the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    platform = None
    if args.platform is not None:
        try:
            platform = Platform.parse(args.platform)
        except ConfigurationError as e:
            parser.error(e.message)

    try:
        settings = get_default_settings()
    except ValidationError as e:
        print(f"Error: invalid HPVS_DEPLOY_* environment settings:\n{e}", file=sys.stderr)
        return 1

    configure_logging(args.log_level or settings.log_level, json_output=args.json_logs or settings.log_json)

    try:
        if args.create_config:
            config_path = create_config_file(args.create_config)
        else:
            config_path = args.config_file

        config = load_config(
            config_path,
            platform=platform,
            source_mode=SourceMode.LOCAL_BUILD if args.local_build else None,
        )
        orchestrator = DeploymentOrchestrator(config, settings)
        bind_context(run_id=orchestrator.run_id)
        instance = asyncio.run(orchestrator.run())

    except ConfigurationError as e:
        print(_describe(e), file=sys.stderr)
        print(file=sys.stderr)
        print(_USAGE_GUIDANCE, file=sys.stderr)
        return 1
    except DeployError as e:
        print(_describe(e), file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return 130

    print(f"Provisioning request accepted for '{instance.instance_name}'.")
    print(f"  instance id:    {instance.instance_id}")
    print(f"  location:       {instance.location}")
    print(f"  resource group: {instance.resource_group_id}")
    print(f"  image tag:      {instance.source_tag}")
    print("The instance is not necessarily running yet; check its status in IBM Cloud.")
    return 0


def _describe(error: DeployError) -> str:
    stage = f" during {error.stage}" if error.stage else ""
    return f"Error{stage} [{error.error_code}]: {error.message}"


def main(argv: Optional[Sequence[str]] = None) -> None:
    sys.exit(run(argv))


if __name__ == "__main__":
    main()
