"""
Text reports for stack status and collected messages.
"""
from typing import Iterable, Sequence

import click

from acme_deploy.cfn.models import Stack, StackResource
from acme_deploy.cfn.status import StatusCategory, classify, colourise, colourise_status


def format_stack_status(stack: Stack, resources: Sequence[StackResource]) -> str:
    out = [f"{click.style(f'Stack {stack.name}', fg='yellow')}: {colourise_status(stack.status)}"]
    if stack.status_reason:
        out.append(f"  {stack.status_reason}")
    for resource in resources:
        rep = classify(resource.status)
        line = f"{resource.resource_type} {resource.logical_id} {resource.status}"
        out.append(f"  {rep} {colourise(line, resource.status)}")
        if resource.status_reason and rep.category is StatusCategory.FAILED:
            out.append(f"      {resource.status_reason}")
    return "\n".join(out)


def format_messages(messages: Iterable[str]) -> str:
    messages = list(messages)
    if not messages:
        return ""
    out = [click.style("Messages:", fg="yellow")]
    out.extend(f"  - {message}" for message in messages)
    return "\n".join(out)
