"""
Immutable snapshots of CloudFormation objects, built from boto3 responses.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

DEPLOY_SKIPPED = "DEPLOY_SKIPPED"


class ChangeSetType(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"


class ChangeAction(str, Enum):
    ADD = "Add"
    MODIFY = "Modify"
    REMOVE = "Remove"


@dataclass(frozen=True)
class Stack:
    name: str
    status: str
    stack_id: Optional[str] = None
    status_reason: Optional[str] = None
    outputs: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_response(cls, data: dict) -> "Stack":
        return cls(
            name=data["StackName"],
            status=data.get("StackStatus", ""),
            stack_id=data.get("StackId"),
            status_reason=data.get("StackStatusReason"),
            outputs={o["OutputKey"]: o.get("OutputValue", "") for o in data.get("Outputs", [])},
        )


@dataclass(frozen=True)
class ResourceChange:
    action: str
    resource_type: str
    logical_id: str
    physical_id: Optional[str] = None
    nested_change_set_id: Optional[str] = None

    @property
    def is_nested(self) -> bool:
        return self.nested_change_set_id is not None

    @classmethod
    def from_response(cls, data: dict) -> "ResourceChange":
        rc = data.get("ResourceChange", {})
        return cls(
            action=rc.get("Action", ""),
            resource_type=rc.get("ResourceType", ""),
            logical_id=rc.get("LogicalResourceId", ""),
            physical_id=rc.get("PhysicalResourceId"),
            nested_change_set_id=rc.get("ChangeSetId"),
        )


@dataclass(frozen=True)
class ChangeSet:
    name: str
    stack_name: str
    status: str
    change_set_id: Optional[str] = None
    stack_id: Optional[str] = None
    status_reason: Optional[str] = None
    execution_status: Optional[str] = None
    changes: Tuple[ResourceChange, ...] = ()

    @classmethod
    def from_response(cls, data: dict, changes: Optional[List[dict]] = None) -> "ChangeSet":
        """
        Build a ChangeSet from a DescribeChangeSet response.
        Args:
            data: The response (first page when paginated).
            changes: The concatenated ``Changes`` of all pages, if already collected.
        """
        if changes is None:
            changes = data.get("Changes", [])
        return cls(
            name=data.get("ChangeSetName", ""),
            stack_name=data.get("StackName", ""),
            status=data.get("Status", ""),
            change_set_id=data.get("ChangeSetId"),
            stack_id=data.get("StackId"),
            status_reason=data.get("StatusReason"),
            execution_status=data.get("ExecutionStatus"),
            changes=tuple(ResourceChange.from_response(c) for c in changes if c.get("Type", "Resource") == "Resource"),
        )


@dataclass(frozen=True)
class StackResource:
    logical_id: str
    resource_type: str
    status: str
    physical_id: Optional[str] = None
    status_reason: Optional[str] = None

    @classmethod
    def from_response(cls, data: dict) -> "StackResource":
        return cls(
            logical_id=data.get("LogicalResourceId", ""),
            resource_type=data.get("ResourceType", ""),
            status=data.get("ResourceStatus", ""),
            physical_id=data.get("PhysicalResourceId"),
            status_reason=data.get("ResourceStatusReason"),
        )


@dataclass(frozen=True)
class StackEvent:
    event_id: str
    logical_id: str
    resource_type: str
    status: str
    status_reason: Optional[str] = None
    timestamp: Optional[datetime] = None

    @classmethod
    def from_response(cls, data: dict) -> "StackEvent":
        return cls(
            event_id=data["EventId"],
            logical_id=data.get("LogicalResourceId", ""),
            resource_type=data.get("ResourceType", ""),
            status=data.get("ResourceStatus", ""),
            status_reason=data.get("ResourceStatusReason"),
            timestamp=data.get("Timestamp"),
        )


@dataclass(frozen=True)
class DeployResult:
    final_status: str
    messages: Tuple[str, ...] = ()
    change_set_name: Optional[str] = None
    change_set_type: Optional[ChangeSetType] = None

    @property
    def skipped(self) -> bool:
        return self.final_status == DEPLOY_SKIPPED


@dataclass(frozen=True)
class DeleteResult:
    final_status: str
    messages: Tuple[str, ...] = ()
    stack_id: Optional[str] = None
