"""
Thin wrapper around the boto3 CloudFormation client.

Every call goes through ``_call`` so that botocore exceptions are translated
into the errors in ``acme_deploy.cfn.errors`` at this boundary.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence
from urllib.parse import urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from acme_deploy.cfn.errors import (
    ChangeSetNotFoundError,
    DeployError,
    StackNotFoundError,
    TransportError,
    ValidationRejectedError,
)
from acme_deploy.cfn.models import ChangeSet, ChangeSetType, Stack, StackEvent, StackResource

DEFAULT_CAPABILITIES = ("CAPABILITY_NAMED_IAM", "CAPABILITY_AUTO_EXPAND")


def is_template_url(template: str) -> bool:
    parsed = urlparse(template.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def build_parameters(parameters: Optional[Mapping[str, Any]]) -> List[Dict[str, str]]:
    stack_params = []
    for k, v in (parameters or {}).items():
        if isinstance(v, (list, tuple)):
            v = ",".join(str(x) for x in v)
        stack_params.append({"ParameterKey": k, "ParameterValue": str(v)})
    return stack_params


def build_tags(tags: Optional[Mapping[str, str]]) -> List[Dict[str, str]]:
    return [{"Key": k, "Value": str(v)} for k, v in (tags or {}).items()]


class ChangeSetNameGenerator:
    """
    Generates ``{stack_name}-{unix_timestamp}`` change set names.

    Names are monotonic per stack within a process, so two requests in the same
    second still get distinct names.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._last: Dict[str, int] = {}
        self._lock = threading.Lock()

    def __call__(self, stack_name: str) -> str:
        with self._lock:
            stamp = int(self.clock())
            last = self._last.get(stack_name)
            if last is not None and stamp <= last:
                stamp = last + 1
            self._last[stack_name] = stamp
        return f"{stack_name}-{stamp}"


class StackDirectoryClient:
    """
    Capability interface to CloudFormation used by the stack deployer.
    """

    def __init__(
        self,
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        session=None,
        client=None,
    ):
        self.region = region
        self.logger = logging.getLogger(self.__class__.__name__)
        if client is None:
            client_kwargs = {"region_name": region}
            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url
            client = (session or boto3).client("cloudformation", **client_kwargs)
        self.cfn = client

    def _call(
        self,
        operation: str,
        fn: Callable[..., Any],
        not_found: Optional[Callable[[str, str], Optional[DeployError]]] = None,
        **kwargs,
    ) -> Any:
        """
        Invoke a boto3 operation and translate its exceptions.
        Args:
            operation: API name used to prefix transport errors.
            fn: The boto3 method.
            not_found: Maps an error (code, message) to a not-found error, or None.
            kwargs: Request parameters.
        """
        try:
            return fn(**kwargs)
        except ClientError as e:
            error = e.response.get("Error", {})
            code = error.get("Code", "")
            message = error.get("Message", str(e))
            missing = not_found(code, message) if not_found else None
            if missing is not None:
                raise missing from e
            if code == "ValidationError":
                raise ValidationRejectedError(message) from e
            raise TransportError(operation, message) from e
        except BotoCoreError as e:
            raise TransportError(operation, str(e)) from e

    @staticmethod
    def _stack_not_found(stack_name: str) -> Callable[[str, str], Optional[DeployError]]:
        # CloudFormation reports a missing stack as either of these.
        def check(code: str, message: str) -> Optional[DeployError]:
            if code == "StackNotFoundException" or (code == "ValidationError" and "does not exist" in message):
                return StackNotFoundError(stack_name, message or None)
            return None

        return check

    def describe_stack(self, stack_name: str) -> Stack:
        """Fetch a stack by name or id."""
        res = self._call(
            "DescribeStacks",
            self.cfn.describe_stacks,
            not_found=self._stack_not_found(stack_name),
            StackName=stack_name,
        )
        stacks = res.get("Stacks", [])
        if not stacks:
            raise StackNotFoundError(stack_name)
        return Stack.from_response(stacks[0])

    def describe_stack_resources(self, stack_name: str) -> List[StackResource]:
        res = self._call(
            "DescribeStackResources",
            self.cfn.describe_stack_resources,
            not_found=self._stack_not_found(stack_name),
            StackName=stack_name,
        )
        return [StackResource.from_response(r) for r in res.get("StackResources", [])]

    def describe_change_set(self, stack_name: str, change_set_name: str) -> ChangeSet:
        """
        Fetch a change set, following NextToken so all changes are returned.
        The stack name may be empty when the change set is addressed by its id.
        """
        kwargs = {"ChangeSetName": change_set_name}
        if stack_name:
            kwargs["StackName"] = stack_name
        def not_found(code: str, message: str) -> Optional[DeployError]:
            if code == "ChangeSetNotFound":
                return ChangeSetNotFoundError(change_set_name, message or None)
            return None

        first = None
        changes: List[dict] = []
        while True:
            page = self._call("DescribeChangeSet", self.cfn.describe_change_set, not_found=not_found, **kwargs)
            if first is None:
                first = page
            changes.extend(page.get("Changes", []))
            next_token = page.get("NextToken")
            if not next_token:
                break
            kwargs["NextToken"] = next_token
        return ChangeSet.from_response(first, changes)

    def create_change_set(
        self,
        change_set_type: ChangeSetType,
        change_set_name: str,
        stack_name: str,
        template: str,
        parameters: Optional[Mapping[str, Any]] = None,
        tags: Optional[Mapping[str, str]] = None,
        capabilities: Optional[Sequence[str]] = None,
        role_arn: Optional[str] = None,
    ) -> str:
        """
        Submit a change set. ``template`` may be a template URL or an inline body.
        Returns:
            The change set id.
        """
        kwargs = {
            "ChangeSetType": ChangeSetType(change_set_type).value,
            "ChangeSetName": change_set_name,
            "StackName": stack_name,
            "Parameters": build_parameters(parameters),
            "Tags": build_tags(tags),
            "IncludeNestedStacks": True,
            "Capabilities": list(capabilities if capabilities is not None else DEFAULT_CAPABILITIES),
        }
        if is_template_url(template):
            kwargs["TemplateURL"] = template.strip()
        else:
            kwargs["TemplateBody"] = template
        if role_arn:
            kwargs["RoleARN"] = role_arn
        self.logger.info(f"Creating {kwargs['ChangeSetType']} change set {change_set_name} for stack {stack_name}")
        res = self._call("CreateChangeSet", self.cfn.create_change_set, **kwargs)
        return res.get("Id", change_set_name)

    def execute_change_set(self, stack_name: str, change_set_name: str) -> None:
        self.logger.info(f"Executing change set {change_set_name} for stack {stack_name}")
        self._call(
            "ExecuteChangeSet",
            self.cfn.execute_change_set,
            ChangeSetName=change_set_name,
            StackName=stack_name,
        )

    def delete_stack(self, stack_name: str, role_arn: Optional[str] = None) -> None:
        kwargs = {"StackName": stack_name}
        if role_arn:
            kwargs["RoleARN"] = role_arn
        self.logger.info(f"Deleting stack {stack_name}")
        self._call("DeleteStack", self.cfn.delete_stack, **kwargs)

    def describe_stack_events(
        self,
        stack_name: str,
        stop_at_event_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[StackEvent]:
        """
        Return stack events newest first, stopping before ``stop_at_event_id``.
        """
        def collect() -> List[StackEvent]:
            events: List[StackEvent] = []
            paginator = self.cfn.get_paginator("describe_stack_events")
            for page in paginator.paginate(StackName=stack_name):
                for raw in page.get("StackEvents", []):
                    if raw["EventId"] == stop_at_event_id:
                        return events
                    events.append(StackEvent.from_response(raw))
                    if limit is not None and len(events) >= limit:
                        return events
            return events

        return self._call("DescribeStackEvents", collect, not_found=self._stack_not_found(stack_name))
