"""
Renders a change set, including any nested stack change sets, as one tree.

Plain resource changes are listed first; nested stacks are grouped at the end
of each level with their own changes indented beneath them.
"""
from typing import Callable

import click

from acme_deploy.cfn.errors import ChangeSetRenderError, OperationCancelledError
from acme_deploy.cfn.models import ChangeAction, ChangeSet, ResourceChange
from acme_deploy.cfn.status import StatusCategory, style_category

DEFAULT_MAX_DEPTH = 32

ACTION_STYLES = {
    ChangeAction.ADD.value: ("+", StatusCategory.COMPLETE),
    ChangeAction.MODIFY.value: (">", StatusCategory.IN_PROGRESS),
    ChangeAction.REMOVE.value: ("-", StatusCategory.FAILED),
}
UNKNOWN_ACTION_STYLE = ("?", StatusCategory.PENDING)

# (stack name or "", change set name or id) -> ChangeSet
FetchChangeSet = Callable[[str, str], ChangeSet]


def indent(prefix: str, text: str) -> str:
    return "\n".join(prefix + line for line in text.split("\n"))


def _action_line(change: ResourceChange, text: str, colour: bool) -> str:
    symbol, category = ACTION_STYLES.get(change.action, UNKNOWN_ACTION_STYLE)
    line = f"  {symbol} {text}"
    return style_category(line, category) if colour else line


def render_change_set(
    change_set: ChangeSet,
    render_nested: Callable[[ResourceChange], str],
    colour: bool = True,
) -> str:
    """
    Format a single change set snapshot.
    Args:
        change_set: The change set to format.
        render_nested: Returns the rendered tree for a nested stack change.
        colour: Whether to emit ANSI styling.
    Returns:
        The rendered tree with trailing whitespace removed.
    """
    header = f"Stack {change_set.stack_name}"
    if colour:
        header = click.style(header, fg="yellow")
    out = [f"{header}:"]

    for change in change_set.changes:
        if change.is_nested:
            continue
        out.append(_action_line(change, f"{change.resource_type} {change.logical_id}", colour))

    for change in change_set.changes:
        if not change.is_nested:
            continue
        child = render_nested(change)
        child_header, _, body = child.partition("\n")
        out.append(_action_line(change, click.unstyle(child_header), colour))
        if body:
            out.append(indent("  ", body))

    return "\n".join(out).rstrip()


class ChangeSetRenderer:
    """
    Fetches and renders a change set tree.
    """

    def __init__(self, fetch: FetchChangeSet, max_depth: int = DEFAULT_MAX_DEPTH, colour: bool = True):
        self.fetch = fetch
        self.max_depth = max_depth
        self.colour = colour

    def render(self, stack_name: str, change_set_name: str, depth: int = 0) -> str:
        """
        Render the named change set. An empty stack name resolves the change set
        by its id alone, which is how nested change sets are referenced.
        """
        if depth > self.max_depth:
            raise ChangeSetRenderError(
                f"nested change sets exceed maximum depth of {self.max_depth}",
                stack_name=stack_name,
                change_set_name=change_set_name,
            )
        try:
            change_set = self.fetch(stack_name, change_set_name)
        except (ChangeSetRenderError, OperationCancelledError):
            raise
        except Exception as e:
            raise ChangeSetRenderError(
                f"error getting changeset '{change_set_name}' for stack '{stack_name}': {e}",
                stack_name=stack_name,
                change_set_name=change_set_name,
            ) from e

        def render_nested(change: ResourceChange) -> str:
            return self.render("", change.nested_change_set_id, depth + 1)

        return render_change_set(change_set, render_nested, colour=self.colour)
