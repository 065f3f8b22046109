from assessments.exceptions import InvalidStatusTransition


def ensure_forward(order, current, target, label="status"):
    """
    Raises InvalidStatusTransition when ``target`` comes before ``current`` in
    ``order``. Staying on the same status is allowed. Returns True on change.
    """
    if current not in order or target not in order:
        raise InvalidStatusTransition(f"Unknown {label} '{target}'.")
    if order.index(target) < order.index(current):
        raise InvalidStatusTransition(f"Cannot move {label} from '{current}' back to '{target}'.")
    return current != target


def advance_attempt(attempt, target):
    changed = ensure_forward(attempt.STATUS_ORDER, attempt.status, target, label="attempt")
    attempt.status = target
    return changed


def advance_exam(exam, target):
    changed = ensure_forward(exam.STATUS_ORDER, exam.status, target, label="exam")
    exam.status = target
    return changed
