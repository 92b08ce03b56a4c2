"""
Command line interface.

Usage:
    cribl-storage-tool iam setup --account 111122223333 --bucket logs-bucket
    cribl-storage-tool iam setup --worker-arn arn:aws:iam::111122223333:role/main-default \\
        --action collect --bucket-file buckets.json --external-id s3cr3t
    cribl-storage-tool s3 list --regex '^logs-' --output names
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any

from botocore.exceptions import NoCredentialsError, PartialCredentialsError
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel

from cribl_storage_tool import __version__
from cribl_storage_tool.bucket_file import load_bucket_file, parse_worker_arn, split_bucket_args
from cribl_storage_tool.config import DEFAULT_CONFIG_FILE, create_session, load_config
from cribl_storage_tool.errors import ConfigError, InvalidInputError, StorageToolError
from cribl_storage_tool.iam import (
    DEFAULT_ROLE_NAME,
    INLINE_POLICY_NAME,
    IamRoleStore,
    RoleSetupRequest,
    RoleSetupResult,
    reconcile,
    validate_request,
)
from cribl_storage_tool.s3 import check_single_narrowing, render_buckets, select_buckets

console = Console()


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    for name in ("boto3", "botocore", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _config_buckets(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return split_bucket_args([value])
    return [str(name) for name in value]


def build_setup_request(args: argparse.Namespace, config: dict[str, Any]) -> RoleSetupRequest:
    """Merge command line flags over config file defaults into a request."""
    defaults = config.get("iam", {})

    account = args.account
    workspace = args.workspace
    worker_group = args.workergroup
    if args.worker_arn:
        if workspace or worker_group:
            raise InvalidInputError(
                "--worker-arn cannot be combined with --workspace or --workergroup"
            )
        account, workspace, worker_group = parse_worker_arn(args.worker_arn)

    account = account or defaults.get("account")
    if not account:
        raise InvalidInputError(
            "An account ID is required: use --account, --worker-arn or the config file"
        )

    bucket_names = split_bucket_args(args.bucket)
    if args.bucket_file:
        bucket_names.extend(load_bucket_file(args.bucket_file))
    if not bucket_names:
        bucket_names = _config_buckets(defaults.get("buckets"))
    if not bucket_names:
        raise InvalidInputError(
            "At least one bucket name must be provided using --bucket or --bucket-file"
        )

    request = RoleSetupRequest(
        role_name=args.role or defaults.get("role") or DEFAULT_ROLE_NAME,
        trusted_account_id=str(account),
        bucket_names=bucket_names,
        external_id=str(args.external_id or defaults.get("external_id") or ""),
        workspace=str(workspace or defaults.get("workspace") or ""),
        worker_group=str(worker_group or defaults.get("workergroup") or ""),
        action=str(args.action or defaults.get("action") or ""),
    )
    return validate_request(request)


def display_setup_result(result: RoleSetupResult) -> None:
    statement = result.trust_policy["Statement"][0]
    resources = result.inline_policy["Statement"][0]["Resource"]
    console.print(
        Panel(
            f"[bold]Role:[/bold] {result.role_name} "
            f"({'created' if result.created else 'updated'})\n"
            f"[cyan]Trusted principal:[/cyan] {result.principal}\n"
            f"[cyan]External ID condition:[/cyan] {'yes' if 'Condition' in statement else 'no'}\n"
            f"[green]Inline policy:[/green] {INLINE_POLICY_NAME} "
            f"({len(resources) // 2} buckets, {len(resources)} resources)",
            title="IAM Setup",
            box=box.ROUNDED,
        )
    )
    console.print("\n[bold green]IAM trust relationship setup completed successfully.[/bold green]")


def run_iam_setup(args: argparse.Namespace, config: dict[str, Any]) -> int:
    request = build_setup_request(args, config)

    session = create_session(
        args.profile or config.get("profile"),
        args.region or config.get("region"),
    )
    store = IamRoleStore(session.client("iam"))

    console.print(f"[bold]Setting up IAM role {request.role_name}...[/bold]")
    result = reconcile(store, request)
    display_setup_result(result)
    return 0


def run_s3_list(args: argparse.Namespace, config: dict[str, Any]) -> int:
    check_single_narrowing(args.filter, args.regex, args.bucket_file)

    s3_client = None
    bucket_names = None
    if args.bucket_file:
        bucket_names = load_bucket_file(args.bucket_file)
    else:
        session = create_session(
            args.profile or config.get("profile"),
            args.region or config.get("region"),
        )
        s3_client = session.client("s3")

    names = select_buckets(
        s3_client,
        substring=args.filter,
        pattern=args.regex,
        bucket_names=bucket_names,
    )

    rendered = render_buckets(names, args.output)
    if isinstance(rendered, str):
        if rendered:
            console.print(rendered, markup=False, highlight=False, emoji=False, soft_wrap=True)
    elif names:
        console.print(rendered)
    else:
        console.print("[yellow]No S3 buckets found.[/yellow]")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cribl-storage-tool",
        description="Cribl Storage Tool - Set up cross-account AWS access to S3 for Cribl.",
    )
    parser.add_argument(
        "-V", "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-c", "--config",
        default=DEFAULT_CONFIG_FILE,
        help=f"Path to a YAML file with default settings (default: {DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging and show full error tracebacks",
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND", required=True)

    iam_parser = commands.add_parser("iam", help="Manage IAM resources")
    iam_commands = iam_parser.add_subparsers(dest="iam_command", metavar="COMMAND", required=True)
    setup = iam_commands.add_parser(
        "setup",
        help="Set up an IAM role for cross-account access",
        description="Create or update an IAM role with a trust relationship and an S3 access policy.",
    )
    setup.add_argument(
        "-r", "--role",
        help=f"Name of the IAM role to create or update (default: {DEFAULT_ROLE_NAME})",
    )
    trusted = setup.add_mutually_exclusive_group()
    trusted.add_argument("-a", "--account", help="AWS account ID to trust")
    trusted.add_argument(
        "--worker-arn",
        help="Worker role ARN (arn:aws:iam::ACCOUNT:role/WORKSPACE-WORKERGROUP) "
        "supplying account, workspace and worker group",
    )
    setup.add_argument("-e", "--external-id", help="External ID required to assume the role")
    setup.add_argument("-w", "--workspace", help="Workspace name (default: main)")
    setup.add_argument("-g", "--workergroup", help="Worker group name (default: default)")
    setup.add_argument("-s", "--action", help="Action type for the IAM role (default: search)")
    setup.add_argument(
        "-b", "--bucket",
        action="append",
        help="S3 bucket to grant access to (repeatable, comma separated values allowed)",
    )
    setup.add_argument(
        "-f", "--bucket-file",
        help="File with bucket names: JSON array, JSON objects with 'name', or one per line",
    )
    setup.add_argument("-p", "--profile", help="AWS profile name to use for authentication")
    setup.add_argument("-z", "--region", help="AWS region to use (overrides profile/env default)")
    setup.set_defaults(handler=run_iam_setup)

    s3_parser = commands.add_parser("s3", help="Manage S3 resources")
    s3_commands = s3_parser.add_subparsers(dest="s3_command", metavar="COMMAND", required=True)
    list_parser = s3_commands.add_parser(
        "list",
        help="List S3 buckets",
        description="List the S3 buckets visible to the configured credentials.",
    )
    list_parser.add_argument(
        "-o", "--output",
        default="text",
        help="Output format: text, json or names (default: text)",
    )
    list_parser.add_argument("-f", "--filter", help="Only show buckets whose name contains this substring")
    list_parser.add_argument("-x", "--regex", help="Only show buckets whose name matches this regular expression")
    list_parser.add_argument("-b", "--bucket-file", help="Show the buckets named in this file instead of listing")
    list_parser.add_argument("-p", "--profile", help="AWS profile name to use for authentication")
    list_parser.add_argument("-r", "--region", help="AWS region to use (overrides profile/env default)")
    list_parser.set_defaults(handler=run_s3_list)

    return parser


def _print_error(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(message)}", soft_wrap=True)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = load_config(args.config)
        return args.handler(args, config)

    except InvalidInputError as e:
        _print_error(str(e))
        return 2
    except (NoCredentialsError, PartialCredentialsError) as e:
        _print_error(str(ConfigError(f"AWS credentials could not be resolved: {e}")))
        return 1
    except StorageToolError as e:
        _print_error(str(e))
        if args.verbose:
            console.print_exception()
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user.[/yellow]")
        return 130
    except Exception as e:
        _print_error(str(e))
        if args.verbose:
            console.print_exception()
        return 1


if __name__ == "__main__":
    sys.exit(main())
