from unittest.mock import Mock

import pytest

from acme_deploy.cfn.client import StackDirectoryClient
from acme_deploy.cfn.errors import (
    ChangeSetRenderError,
    OperationCancelledError,
    RemoteOperationFailedError,
    StackNotFoundError,
    TransportError,
    UserCancelledError,
    ValidationRejectedError,
)
from acme_deploy.cfn.models import ChangeSet, ChangeSetType, ResourceChange, Stack, StackEvent
from acme_deploy.cfn.waiter import Cancellation
from acme_deploy.config import DeployerConfig
from acme_deploy.sdk.stack_deployer import CONFIRM_PREAMBLE, StackDeployer

NO_CHANGES = "The submitted information didn't contain changes. Submit different information to create a change set."
STACK_ID = "arn:aws:cloudformation:us-east-1:123:stack/app/abc"


def _client(existing=True, settle=("UPDATE_IN_PROGRESS", "UPDATE_COMPLETE"), change_set_status="CREATE_COMPLETE"):
    client = Mock(spec=StackDirectoryClient)
    stacks = [Stack(name="app", status=s, stack_id=STACK_ID) for s in settle]
    if existing:
        stacks.insert(0, Stack(name="app", status="UPDATE_COMPLETE", stack_id=STACK_ID))
    else:
        stacks.insert(0, StackNotFoundError("app"))
    client.describe_stack.side_effect = stacks
    client.describe_change_set.return_value = ChangeSet(
        name="app-1",
        stack_name="app",
        status=change_set_status,
        changes=(ResourceChange("Add", "AWS::S3::Bucket", "B1"),),
    )
    client.describe_stack_events.return_value = []
    return client


def _deployer(client, prompt=None):
    return StackDeployer(
        client=client,
        config=DeployerConfig(poll_interval=0),
        prompt=prompt or Mock(return_value=True),
        name_generator=lambda stack_name: f"{stack_name}-1700000000",
    )


def test_deploy_creates_when_stack_missing():
    client = _client(existing=False, settle=("CREATE_IN_PROGRESS", "CREATE_COMPLETE"))
    result = _deployer(client).deploy("Resources: {}", "app", confirm=True)

    assert result.final_status == "CREATE_COMPLETE"
    assert result.change_set_type is ChangeSetType.CREATE
    assert not result.skipped
    args = client.create_change_set.call_args
    assert args.args[:4] == (ChangeSetType.CREATE, "app-1700000000", "app", "Resources: {}")
    client.execute_change_set.assert_called_once_with("app", "app-1700000000")


def test_deploy_updates_existing_stack():
    client = _client(existing=True)
    result = _deployer(client).deploy(
        "Resources: {}", "app", parameters={"Env": "dev"}, tags={"team": "data"},
        role_arn="arn:role", confirm=True,
    )
    assert result.change_set_type is ChangeSetType.UPDATE
    assert result.final_status == "UPDATE_COMPLETE"
    kwargs = client.create_change_set.call_args.kwargs
    assert kwargs["parameters"] == {"Env": "dev"}
    assert kwargs["tags"] == {"team": "data"}
    assert kwargs["role_arn"] == "arn:role"


def test_deploy_propagates_unexpected_describe_errors():
    client = _client()
    client.describe_stack.side_effect = TransportError("DescribeStacks", "Access denied")
    with pytest.raises(TransportError):
        _deployer(client).deploy("{}", "app", confirm=True)
    client.create_change_set.assert_not_called()


def test_no_changes_on_create_skips_deploy():
    client = _client()
    client.create_change_set.side_effect = ValidationRejectedError(NO_CHANGES)
    result = _deployer(client).deploy("{}", "app", confirm=True)
    assert result.skipped
    assert result.final_status == "DEPLOY_SKIPPED"
    client.execute_change_set.assert_not_called()


def test_no_changes_change_set_failure_skips_deploy():
    client = _client()
    client.describe_change_set.return_value = ChangeSet(
        name="app-1", stack_name="app", status="FAILED", status_reason=NO_CHANGES
    )
    result = _deployer(client).deploy("{}", "app", confirm=True)
    assert result.skipped
    client.execute_change_set.assert_not_called()


def test_failed_change_set_surfaces_reason():
    client = _client()
    client.describe_change_set.return_value = ChangeSet(
        name="app-1", stack_name="app", status="FAILED", status_reason="Unresolved resource dependencies [X]"
    )
    with pytest.raises(RemoteOperationFailedError) as exc:
        _deployer(client).deploy("{}", "app", confirm=True)
    assert str(exc.value) == "Unresolved resource dependencies [X]"
    client.execute_change_set.assert_not_called()


def test_other_validation_errors_propagate():
    client = _client()
    client.create_change_set.side_effect = ValidationRejectedError("Template format error")
    with pytest.raises(ValidationRejectedError):
        _deployer(client).deploy("{}", "app", confirm=True)


def test_declined_confirmation_cancels_deploy():
    client = _client()
    prompt = Mock(return_value=False)
    with pytest.raises(UserCancelledError):
        _deployer(client, prompt=prompt).deploy("{}", "app")
    client.execute_change_set.assert_not_called()


def test_confirmation_shows_rendered_change_set():
    client = _client()
    prompt = Mock(return_value=True)
    _deployer(client, prompt=prompt).deploy("{}", "app")
    message = prompt.call_args.args[0]
    assert message.startswith(CONFIRM_PREAMBLE)
    assert "AWS::S3::Bucket B1" in message
    assert message.endswith("Do you wish to continue?")
    client.execute_change_set.assert_called_once()


def test_confirm_flag_skips_prompt():
    client = _client()
    prompt = Mock()
    _deployer(client, prompt=prompt).deploy("{}", "app", confirm=True)
    prompt.assert_not_called()


def test_deploy_collects_failure_messages():
    client = _client(settle=("UPDATE_IN_PROGRESS", "UPDATE_ROLLBACK_COMPLETE"))
    client.describe_stack_events.side_effect = [
        [StackEvent("e0", "app", "AWS::CloudFormation::Stack", "UPDATE_COMPLETE")],
        [StackEvent("e1", "B1", "AWS::S3::Bucket", "UPDATE_FAILED", "Bucket already exists")],
        [],
    ]
    result = _deployer(client).deploy("{}", "app", confirm=True)
    assert result.final_status == "UPDATE_ROLLBACK_COMPLETE"
    assert result.messages == ("B1: Bucket already exists",)


def test_deploy_observes_cancellation_before_remote_calls():
    client = _client()
    cancellation = Cancellation()
    cancellation.cancel()
    with pytest.raises(OperationCancelledError):
        _deployer(client).deploy("{}", "app", confirm=True, cancellation=cancellation)
    client.describe_stack.assert_not_called()


def test_execute_errors_propagate():
    client = _client()
    client.execute_change_set.side_effect = TransportError("ExecuteChangeSet", "Rate exceeded")
    with pytest.raises(TransportError):
        _deployer(client).deploy("{}", "app", confirm=True)


def test_delete_follows_stack_by_id():
    client = _client(settle=("DELETE_IN_PROGRESS", "DELETE_COMPLETE"))
    result = _deployer(client).delete("app", role_arn="arn:role")
    client.delete_stack.assert_called_once_with("app", "arn:role")
    assert client.describe_stack.call_args.args == (STACK_ID,)
    assert result.final_status == "DELETE_COMPLETE"
    assert result.stack_id == STACK_ID


def test_delete_missing_stack_is_fatal():
    client = _client()
    client.describe_stack.side_effect = StackNotFoundError("app")
    with pytest.raises(StackNotFoundError):
        _deployer(client).delete("app")
    client.delete_stack.assert_not_called()


def test_status_returns_stack_and_resources():
    client = _client()
    client.describe_stack_resources.return_value = []
    stack, resources = _deployer(client).status("app")
    assert stack.status == "UPDATE_COMPLETE"
    client.describe_stack_resources.assert_called_once_with(STACK_ID)


def test_deploy_ignores_stale_status_read_after_execute():
    client = _client(settle=("UPDATE_COMPLETE", "UPDATE_IN_PROGRESS", "UPDATE_ROLLBACK_COMPLETE"))
    result = _deployer(client).deploy("{}", "app", confirm=True)
    assert result.final_status == "UPDATE_ROLLBACK_COMPLETE"
    assert client.describe_stack.call_count == 4


def test_delete_ignores_stale_status_read_after_delete():
    client = _client(settle=("CREATE_COMPLETE", "DELETE_IN_PROGRESS", "DELETE_COMPLETE"))
    result = _deployer(client).delete("app")
    assert result.final_status == "DELETE_COMPLETE"


def test_render_error_aborts_before_execute():
    client = _client()
    ready = client.describe_change_set.return_value
    client.describe_change_set.side_effect = [ready, TransportError("DescribeChangeSet", "Rate exceeded")]
    prompt = Mock(return_value=True)

    with pytest.raises(ChangeSetRenderError) as exc:
        _deployer(client, prompt=prompt).deploy("{}", "app")

    assert isinstance(exc.value.__cause__, TransportError)
    prompt.assert_not_called()
    client.execute_change_set.assert_not_called()


def test_deadline_during_settle_raises_cancelled():
    now = [0.0]
    statuses = iter([
        Stack(name="app", status="UPDATE_COMPLETE", stack_id=STACK_ID),
        Stack(name="app", status="UPDATE_IN_PROGRESS", stack_id=STACK_ID),
    ])

    def describe_stack(stack_ref):
        stack = next(statuses)
        if stack.status == "UPDATE_IN_PROGRESS":
            now[0] = 100.0
        return stack

    client = _client()
    client.describe_stack.side_effect = describe_stack
    cancellation = Cancellation(timeout=60, clock=lambda: now[0])

    with pytest.raises(OperationCancelledError, match="deadline exceeded"):
        _deployer(client).deploy("{}", "app", confirm=True, cancellation=cancellation)

    client.execute_change_set.assert_called_once()
    assert client.describe_stack.call_count == 2
