"""
Polling helpers used to wait on CloudFormation change sets and stacks.

CloudFormation has no push notifications, so every wait here is a loop of
remote call, sleep, remote call. Cancellation is local only: abandoning a wait
does not stop the remote operation.
"""
import logging
import threading
import time
from typing import Callable, List, Optional, Tuple, TypeVar

from acme_deploy.cfn.errors import OperationCancelledError, RemoteOperationFailedError
from acme_deploy.cfn.models import ChangeSet, Stack
from acme_deploy.cfn.status import is_change_set_ready, is_settled

LOG = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0

T = TypeVar("T")


class Cancellation:
    """
    Cancellation token with an optional deadline.
    """

    def __init__(self, timeout: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._event = threading.Event()
        self._clock = clock
        self._deadline = clock() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and self._clock() >= self._deadline

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError()
        if self._deadline is not None and self._clock() >= self._deadline:
            raise OperationCancelledError("deadline exceeded")

    def wait(self, seconds: float) -> None:
        """Sleep for up to ``seconds``, returning early on cancel or deadline."""
        if self._deadline is not None:
            seconds = max(0.0, min(seconds, self._deadline - self._clock()))
        if seconds > 0:
            self._event.wait(seconds)


def poll_until(
    fetch: Callable[[], T],
    is_done: Callable[[T], bool],
    interval: float = DEFAULT_POLL_INTERVAL,
    cancellation: Optional[Cancellation] = None,
    backoff: float = 1.0,
    max_interval: Optional[float] = None,
) -> T:
    """
    Call ``fetch`` until ``is_done`` accepts its result, and return that result.
    Args:
        fetch: Performs one fresh remote read.
        is_done: Predicate deciding whether the fetched value is terminal.
        interval: Seconds to wait between reads.
        cancellation: Checked before every read.
        backoff: Multiplier applied to the interval after each read.
        max_interval: Upper bound on the interval when backing off.
    """
    cancellation = cancellation or Cancellation()
    attempt = 0
    while True:
        cancellation.raise_if_cancelled()
        value = fetch()
        attempt += 1
        if is_done(value):
            return value
        LOG.debug(f"Poll attempt {attempt} not done, waiting {interval:.1f}s")
        cancellation.wait(interval)
        interval = interval * backoff
        if max_interval is not None:
            interval = min(interval, max_interval)


def wait_for_change_set_ready(
    client,
    stack_name: str,
    change_set_name: str,
    interval: float = DEFAULT_POLL_INTERVAL,
    cancellation: Optional[Cancellation] = None,
) -> ChangeSet:
    """
    Wait until the change set has been computed. A FAILED change set raises
    RemoteOperationFailedError carrying the remote status reason.
    """
    change_set = poll_until(
        lambda: client.describe_change_set(stack_name, change_set_name),
        lambda cs: is_change_set_ready(cs.status),
        interval=interval,
        cancellation=cancellation,
    )
    if change_set.status == "FAILED":
        raise RemoteOperationFailedError(change_set.status_reason or "", status=change_set.status)
    LOG.info(f"Change set {change_set_name} is ready ({change_set.status})")
    return change_set


class StackEventTracker:
    """
    Collects failure messages from stack events published after a marker.
    """

    def __init__(self, client, stack_ref: str):
        self.client = client
        self.stack_ref = stack_ref
        self.marker: Optional[str] = None
        self.messages: List[str] = []
        # True once any event newer than the primed marker has been seen.
        self.active = False

    def prime(self) -> None:
        """Remember the newest existing event so only later events are reported."""
        events = self.client.describe_stack_events(self.stack_ref, limit=1)
        if events:
            self.marker = events[0].event_id

    def poll(self) -> List[str]:
        events = self.client.describe_stack_events(self.stack_ref, stop_at_event_id=self.marker)
        if not events:
            return []
        self.active = True
        self.marker = events[0].event_id
        new_messages = []
        for event in reversed(events):
            if event.status.endswith("_FAILED") and event.status_reason:
                message = f"{event.logical_id}: {event.status_reason}"
                if message not in self.messages:
                    self.messages.append(message)
                    new_messages.append(message)
        return new_messages


def wait_for_stack_to_settle(
    client,
    stack_ref: str,
    events: Optional[StackEventTracker] = None,
    interval: float = DEFAULT_POLL_INTERVAL,
    cancellation: Optional[Cancellation] = None,
    require_start: bool = False,
) -> Tuple[str, List[str]]:
    """
    Poll the stack until its status is no longer transitional.
    Args:
        client: StackDirectoryClient.
        stack_ref: Stack name or stack id. Use the id to follow a deleted stack.
        events: Tracker primed before the operation started, if any.
        interval: Seconds between polls.
        cancellation: Cancellation token.
        require_start: Only accept a settled status once the operation has been
            seen running, either as a transitional status or as a new event
            after the primed marker. A read that still shows the status from
            before the operation is not a result.
    Returns:
        The final stack status and the failure messages collected on the way.
    """
    cancellation = cancellation or Cancellation()
    events = events or StackEventTracker(client, stack_ref)
    started = not require_start

    def fetch() -> Stack:
        nonlocal started
        # Events are read first so a later stack read reflects any activity seen.
        for message in events.poll():
            LOG.warning(message)
        cancellation.raise_if_cancelled()
        stack = client.describe_stack(stack_ref)
        if events.active or not is_settled(stack.status):
            started = True
        LOG.debug(f"Stack {stack.name} is {stack.status}")
        return stack

    stack = poll_until(
        fetch,
        lambda s: started and is_settled(s.status),
        interval=interval,
        cancellation=cancellation,
    )
    return stack.status, list(events.messages)
