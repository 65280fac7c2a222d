"""Bounded-retry polling of remote resource state.

Two entry points share one polling loop:

- ``wait()`` evaluates a declarative ``WaiterConfig`` (ordered acceptor rules
  matched against fields of the response).
- ``wait_until()`` takes a success predicate and an optional failure
  predicate instead.

Both block the calling thread: worst case ``delay * (max_attempts - 1)``
seconds plus the time spent in the queries themselves.
"""

import logging
import re
import time

from imagevol.errors import ComputeAPIError, WaitCancelledError, WaitFailureError, WaitTimeoutError
from imagevol.provisioning.types import FAILURE, PATH_ALL, SUCCESS

logger = logging.getLogger(__name__)

_SEGMENT_RE = re.compile(r"^(?P<key>[^\[\]]*)(?:\[(?P<index>\d*)\])?$")


# ── Field paths ────────────────────────────────────────────────────


def resolve_path(data, path):
    """Return the list of values reachable at *path* in *data*.

    Path syntax: ``a.b`` descends into mappings, ``a[]`` projects over a
    list, ``a[0]`` indexes into one. Branches that do not exist are dropped,
    so a path into a missing field yields ``[]``. A list at the end of the
    path is flattened into its elements.
    """
    values = [data]
    for segment in path.split("."):
        match = _SEGMENT_RE.match(segment)
        if match is None:
            raise ValueError(f"Invalid path segment '{segment}' in '{path}'")
        key, index = match.group("key"), match.group("index")

        next_values = []
        for value in values:
            if key:
                if not isinstance(value, dict) or key not in value:
                    continue
                value = value[key]
            if index is None:
                next_values.append(value)
            elif not isinstance(value, list):
                continue
            elif index == "":
                next_values.extend(value)
            elif int(index) < len(value):
                next_values.append(value[int(index)])
        values = next_values

    flat = []
    for value in values:
        if isinstance(value, list):
            flat.extend(value)
        else:
            flat.append(value)
    return flat


def acceptor_matches(acceptor, response):
    """Check one acceptor against a response. A path with no values never matches."""
    values = resolve_path(response, acceptor.path)
    if not values:
        return False
    if acceptor.matcher == PATH_ALL:
        return all(v == acceptor.expected for v in values)
    return any(v == acceptor.expected for v in values)


def _describe(acceptor):
    return f"{acceptor.path} {acceptor.matcher} '{acceptor.expected}'"


# ── Polling loop ───────────────────────────────────────────────────


def _poll(query, classify, operation, delay, max_attempts, transient_errors, sleep, clock, cancel_event, resource_id):
    """Run *query* until *classify* returns a terminal outcome.

    *classify* maps a response to ``(outcome, state, condition)`` where
    outcome is SUCCESS, FAILURE or None (keep polling).
    """
    start = clock()
    last_error = None

    for attempt in range(1, max_attempts + 1):
        if attempt > 1:
            if cancel_event is not None:
                if cancel_event.wait(delay):
                    raise WaitCancelledError(operation, attempt - 1, resource_id=resource_id)
            else:
                sleep(delay)
        elif cancel_event is not None and cancel_event.is_set():
            raise WaitCancelledError(operation, 0, resource_id=resource_id)

        try:
            response = query()
        except transient_errors as e:
            last_error = e
            logger.warning(f"{operation}: attempt {attempt}/{max_attempts} failed: {e}")
            continue

        outcome, state, condition = classify(response)
        if outcome == SUCCESS:
            logger.debug(f"{operation}: succeeded on attempt {attempt}/{max_attempts}")
            return response
        if outcome == FAILURE:
            raise WaitFailureError(operation, state, resource_id=resource_id, condition=condition)
        logger.debug(f"{operation}: attempt {attempt}/{max_attempts} not done yet")

    elapsed = clock() - start
    raise WaitTimeoutError(operation, max_attempts, elapsed, resource_id=resource_id) from last_error


def wait(query, config, sleep=time.sleep, clock=time.monotonic, cancel_event=None, resource_id=None):
    """Poll *query* until an acceptor in *config* matches.

    Args:
        query: zero-argument callable performing one status query and
            returning the structured (dict) response.
        config: ``WaiterConfig`` with delay, attempt budget and acceptors.
        sleep: called with ``config.delay`` between attempts.
        clock: monotonic time source used for the elapsed time in errors.
        cancel_event: optional ``threading.Event``; when set, the wait stops
            at the next attempt boundary. When given, the delay is spent
            waiting on the event instead of calling *sleep*.
        resource_id: id of the polled resource, included in errors.

    Returns:
        The response that matched a success acceptor.

    Raises:
        WaitFailureError: a failure acceptor matched (not retried).
        WaitTimeoutError: ``max_attempts`` queries without a match.
        WaitCancelledError: *cancel_event* was set.
    """

    def classify(response):
        for acceptor in config.acceptors:
            if acceptor_matches(acceptor, response):
                return acceptor.outcome, acceptor.expected, _describe(acceptor)
        return None, None, None

    return _poll(
        query,
        classify,
        config.operation,
        config.delay,
        config.max_attempts,
        config.transient_errors,
        sleep,
        clock,
        cancel_event,
        resource_id,
    )


def wait_until(
    query,
    success,
    failure=None,
    operation="wait",
    delay=15,
    max_attempts=40,
    transient_errors=(ComputeAPIError,),
    sleep=time.sleep,
    clock=time.monotonic,
    cancel_event=None,
    resource_id=None,
):
    """Poll *query* until ``success(response)`` is true.

    Args:
        failure: optional callable returning the name of the failure state
            observed in a response, or a falsy value if there is none.

    Returns:
        The response that satisfied *success*.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1 (got {max_attempts})")

    def classify(response):
        if failure is not None:
            state = failure(response)
            if state:
                return FAILURE, state, None
        if success(response):
            return SUCCESS, None, None
        return None, None, None

    return _poll(query, classify, operation, delay, max_attempts, transient_errors, sleep, clock, cancel_event, resource_id)
