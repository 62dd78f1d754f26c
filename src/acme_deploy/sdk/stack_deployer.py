import logging
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

import click

from acme_deploy.cfn.changeset import ChangeSetRenderer
from acme_deploy.cfn.client import ChangeSetNameGenerator, StackDirectoryClient
from acme_deploy.cfn.errors import (
    RemoteOperationFailedError,
    StackNotFoundError,
    UserCancelledError,
    ValidationRejectedError,
)
from acme_deploy.cfn.models import (
    DEPLOY_SKIPPED,
    ChangeSet,
    ChangeSetType,
    DeleteResult,
    DeployResult,
    Stack,
    StackResource,
)
from acme_deploy.cfn.status import colourise_status
from acme_deploy.cfn.waiter import (
    Cancellation,
    StackEventTracker,
    wait_for_change_set_ready,
    wait_for_stack_to_settle,
)
from acme_deploy.config import DeployerConfig

NO_CHANGES_MESSAGES = (
    "The submitted information didn't contain changes. Submit different information to create a change set.",
    "No updates are to be performed.",
)

CONFIRM_PREAMBLE = "The following CloudFormation changes will be made:"
CONFIRM_QUESTION = "Do you wish to continue?"


def is_no_changes(message: Optional[str]) -> bool:
    return bool(message) and any(m in message for m in NO_CHANGES_MESSAGES)


def click_prompt(message: str) -> bool:
    """Ask the operator on the terminal. Ctrl-C or EOF counts as a decline."""
    try:
        return click.confirm(message, default=True, err=True)
    except click.Abort:
        return False


class StackDeployer:
    """
    Creates, updates and deletes CloudFormation stacks through change sets.
    """

    def __init__(
        self,
        client: Optional[StackDirectoryClient] = None,
        config: Optional[DeployerConfig] = None,
        prompt: Callable[[str], bool] = click_prompt,
        name_generator: Optional[Callable[[str], str]] = None,
    ):
        self.config = config or DeployerConfig()
        self.client = client or StackDirectoryClient(
            region=self.config.region, endpoint_url=self.config.endpoint_url
        )
        self.prompt = prompt
        self.name_generator = name_generator or ChangeSetNameGenerator()
        self.logger = logging.getLogger(self.__class__.__name__)

    def _change_set_type(self, stack_name: str, cancellation: Cancellation) -> ChangeSetType:
        cancellation.raise_if_cancelled()
        try:
            stack = self.client.describe_stack(stack_name)
        except StackNotFoundError:
            return ChangeSetType.CREATE
        return ChangeSetType.UPDATE if stack.stack_id else ChangeSetType.CREATE

    def _fetch_change_set(self, cancellation: Cancellation) -> Callable[[str, str], ChangeSet]:
        def fetch(stack_name: str, change_set_name: str) -> ChangeSet:
            cancellation.raise_if_cancelled()
            return self.client.describe_change_set(stack_name, change_set_name)

        return fetch

    def format_change_set(self, stack_name: str, change_set_name: str, cancellation: Optional[Cancellation] = None) -> str:
        renderer = ChangeSetRenderer(
            self._fetch_change_set(cancellation or Cancellation()),
            max_depth=self.config.max_nesting_depth,
        )
        return renderer.render(stack_name, change_set_name)

    def _skipped(self, change_set_name: str, change_set_type: ChangeSetType) -> DeployResult:
        self.logger.debug("Skipped deployment (there are no changes in the changeset)")
        return DeployResult(
            final_status=DEPLOY_SKIPPED,
            change_set_name=change_set_name,
            change_set_type=change_set_type,
        )

    def deploy(
        self,
        template: str,
        stack_name: str,
        parameters: Optional[Mapping[str, Any]] = None,
        tags: Optional[Mapping[str, str]] = None,
        role_arn: Optional[str] = None,
        confirm: bool = False,
        capabilities: Optional[Sequence[str]] = None,
        cancellation: Optional[Cancellation] = None,
    ) -> DeployResult:
        """
        Deploy a template to a stack through a change set and wait for it to settle.
        Args:
            template: Template URL or inline template body.
            stack_name: Name of the stack to create or update.
            parameters: CloudFormation parameters as key-value pairs.
            tags: Tags to apply to the stack.
            role_arn: Optional role CloudFormation assumes for the deployment.
            confirm: Skip the interactive review of the change set if True.
            capabilities: Override the default capabilities.
            cancellation: Local cancellation token or deadline.
        Returns:
            The final stack status, or DEPLOY_SKIPPED when there was nothing to change.
        Raises:
            UserCancelledError: The operator declined the change set.
            RemoteOperationFailedError: The change set failed to compute.
        """
        cancellation = cancellation or Cancellation()
        change_set_type = self._change_set_type(stack_name, cancellation)
        change_set_name = self.name_generator(stack_name)
        self.logger.info(f"Deploying stack '{stack_name}' with {change_set_type.value} change set {change_set_name}")

        cancellation.raise_if_cancelled()
        try:
            self.client.create_change_set(
                change_set_type,
                change_set_name,
                stack_name,
                template,
                parameters=parameters,
                tags=tags,
                capabilities=capabilities,
                role_arn=role_arn,
            )
        except ValidationRejectedError as e:
            if is_no_changes(e.message):
                return self._skipped(change_set_name, change_set_type)
            raise

        try:
            wait_for_change_set_ready(
                self.client,
                stack_name,
                change_set_name,
                interval=self.config.poll_interval,
                cancellation=cancellation,
            )
        except RemoteOperationFailedError as e:
            if is_no_changes(e.reason):
                return self._skipped(change_set_name, change_set_type)
            raise

        if not confirm:
            diff = self.format_change_set(stack_name, change_set_name, cancellation)
            if not self.prompt(f"{CONFIRM_PREAMBLE}\n{diff}\n\n{CONFIRM_QUESTION}"):
                raise UserCancelledError()

        events = StackEventTracker(self.client, stack_name)
        cancellation.raise_if_cancelled()
        events.prime()
        cancellation.raise_if_cancelled()
        self.client.execute_change_set(stack_name, change_set_name)

        status, messages = wait_for_stack_to_settle(
            self.client,
            stack_name,
            events=events,
            interval=self.config.poll_interval,
            cancellation=cancellation,
            require_start=True,
        )
        self.logger.debug(f"Final stack status: {colourise_status(status)}")
        return DeployResult(
            final_status=status,
            messages=tuple(messages),
            change_set_name=change_set_name,
            change_set_type=change_set_type,
        )

    def delete(
        self,
        stack_name: str,
        role_arn: Optional[str] = None,
        cancellation: Optional[Cancellation] = None,
    ) -> DeleteResult:
        """
        Delete a stack and wait for the deletion to settle.
        The stack is followed by id so that its final DELETE_COMPLETE status can
        still be read once it no longer resolves by name.
        """
        cancellation = cancellation or Cancellation()
        cancellation.raise_if_cancelled()
        stack = self.client.describe_stack(stack_name)
        stack_ref = stack.stack_id or stack_name

        events = StackEventTracker(self.client, stack_ref)
        cancellation.raise_if_cancelled()
        events.prime()
        cancellation.raise_if_cancelled()
        self.client.delete_stack(stack_name, role_arn)

        status, messages = wait_for_stack_to_settle(
            self.client,
            stack_ref,
            events=events,
            interval=self.config.poll_interval,
            cancellation=cancellation,
            require_start=True,
        )
        self.logger.debug(f"Final stack status: {colourise_status(status)}")
        return DeleteResult(final_status=status, messages=tuple(messages), stack_id=stack.stack_id)

    def status(self, stack_name: str) -> Tuple[Stack, List[StackResource]]:
        stack = self.client.describe_stack(stack_name)
        return stack, self.client.describe_stack_resources(stack.stack_id or stack_name)
