
import argparse
import logging
import sys
from pathlib import Path

import click

from acme_deploy.cfn.client import DEFAULT_CAPABILITIES, StackDirectoryClient, is_template_url
from acme_deploy.cfn.errors import DeployError, OperationCancelledError, UserCancelledError
from acme_deploy.cfn.report import format_messages, format_stack_status
from acme_deploy.cfn.status import StatusCategory, classify, colourise_status
from acme_deploy.cfn.waiter import Cancellation
from acme_deploy.config import DeployerConfig
from acme_deploy.sdk.stack_deployer import StackDeployer

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USER_CANCELLED = 2
EXIT_CANCELLED = 3


def _add_common_arguments(parser):
    parser.add_argument("--stack-name", required=True, help="CloudFormation stack name")
    parser.add_argument("--region", help="AWS region (default: from AWS_REGION/AWS_DEFAULT_REGION or us-east-1)")
    parser.add_argument("--endpoint-url", help="Override the CloudFormation endpoint (e.g. LocalStack)")
    parser.add_argument("--timeout", type=float, help="Give up waiting after this many seconds")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="acme-deploy", description="Deploy CloudFormation stacks through reviewable change sets"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    deploy_parser = subparsers.add_parser("deploy", help="Create or update a stack through a change set")
    _add_common_arguments(deploy_parser)
    deploy_parser.add_argument("--template", required=True, help="Path to a template file, or a template URL")
    deploy_parser.add_argument(
        "--parameters", nargs="*", default=[], metavar="KEY=VALUE",
        help="CloudFormation parameters (e.g. ClusterName=foo SubnetIds=subnet-aaa,subnet-bbb)"
    )
    deploy_parser.add_argument("--tags", nargs="*", default=[], metavar="KEY=VALUE", help="Stack tags")
    deploy_parser.add_argument("--role-arn", help="IAM role CloudFormation assumes for the deployment")
    deploy_parser.add_argument(
        "--confirm", "-y", action="store_true", help="Execute the change set without reviewing it"
    )
    deploy_parser.add_argument(
        "--capabilities", nargs="*", default=list(DEFAULT_CAPABILITIES),
        help="CloudFormation capabilities (default: CAPABILITY_NAMED_IAM CAPABILITY_AUTO_EXPAND)"
    )

    delete_parser = subparsers.add_parser("delete", help="Delete a stack")
    _add_common_arguments(delete_parser)
    delete_parser.add_argument("--role-arn", help="IAM role CloudFormation assumes for the deletion")

    status_parser = subparsers.add_parser("status", help="Show a stack and its resources")
    _add_common_arguments(status_parser)

    return parser.parse_args(argv)


def parse_key_values(items, kind="parameter"):
    values = {}
    for item in items:
        if "=" not in item:
            raise ValueError(f"Invalid {kind}: {item}. Use KEY=VALUE format.")
        k, v = item.split("=", 1)
        values[k] = v
    return values


def load_template(source: str) -> str:
    if is_template_url(source):
        return source
    return Path(source).read_text()


def build_deployer(args) -> StackDeployer:
    config = DeployerConfig.from_env()
    config = DeployerConfig(
        region=args.region or config.region,
        endpoint_url=args.endpoint_url or config.endpoint_url,
        poll_interval=config.poll_interval,
        max_nesting_depth=config.max_nesting_depth,
    )
    client = StackDirectoryClient(region=config.region, endpoint_url=config.endpoint_url)
    return StackDeployer(client=client, config=config)


def _print_outcome(status: str, messages) -> None:
    click.echo(f"Final stack status: {colourise_status(status)}")
    block = format_messages(messages)
    if block:
        click.echo(block)


def main_logic(args, deployer: StackDeployer) -> int:
    cancellation = Cancellation(timeout=args.timeout)
    if args.command == "deploy":
        params = parse_key_values(args.parameters)
        tags = parse_key_values(args.tags, kind="tag")
        result = deployer.deploy(
            template=load_template(args.template),
            stack_name=args.stack_name,
            parameters=params,
            tags=tags,
            role_arn=args.role_arn,
            confirm=args.confirm,
            capabilities=args.capabilities,
            cancellation=cancellation,
        )
        if result.skipped:
            click.echo(f"Skipped deployment of stack {args.stack_name} (there are no changes in the changeset)")
            return EXIT_OK
        _print_outcome(result.final_status, result.messages)
        return EXIT_OK if classify(result.final_status).category is StatusCategory.COMPLETE else EXIT_FAILED
    elif args.command == "delete":
        result = deployer.delete(stack_name=args.stack_name, role_arn=args.role_arn, cancellation=cancellation)
        _print_outcome(result.final_status, result.messages)
        return EXIT_OK if result.final_status == "DELETE_COMPLETE" else EXIT_FAILED
    elif args.command == "status":
        stack, resources = deployer.status(args.stack_name)
        click.echo(format_stack_status(stack, resources))
        return EXIT_OK
    print("Unknown command", file=sys.stderr)
    return EXIT_FAILED


def run(argv=None, deployer: StackDeployer = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
        stream=sys.stderr,
    )
    try:
        return main_logic(args, deployer or build_deployer(args))
    except UserCancelledError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        return EXIT_USER_CANCELLED
    except OperationCancelledError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        return EXIT_CANCELLED
    except (DeployError, ValueError, OSError) as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        return EXIT_FAILED


def main():
    sys.exit(run())


if __name__ == "__main__":
    main()
