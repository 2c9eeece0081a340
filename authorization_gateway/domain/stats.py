"""Dashboard counters over a collection of authorization requests"""

from typing import Dict, Iterable
from authorization_gateway.domain.models import AuthorizationRequest, Priority, RequestStats, RequestStatus


def aggregate_stats(requests: Iterable[AuthorizationRequest]) -> RequestStats:
    """
    Count requests per status, priority and risk level, and average the time
    from creation to decision over decided requests. Open requests (and decided
    ones missing a timestamp) stay out of the average.
    """
    per_status: Dict[str, int] = {status.value: 0 for status in RequestStatus}
    per_priority: Dict[str, int] = {priority.value: 0 for priority in Priority}
    per_risk_level: Dict[str, int] = {"low": 0, "medium": 0, "high": 0}

    total = 0
    decision_seconds = []
    for request in requests:
        total += 1
        per_status[request.status.value] += 1
        per_priority[request.priority.value] += 1
        per_risk_level[request.risk_level] = per_risk_level.get(request.risk_level, 0) + 1

        if request.status.is_terminal and request.decided_at and request.created_at:
            decision_seconds.append((request.decided_at - request.created_at).total_seconds())

    average = sum(decision_seconds) / len(decision_seconds) if decision_seconds else None

    return RequestStats(
        total=total,
        per_status=per_status,
        per_priority=per_priority,
        per_risk_level=per_risk_level,
        decided_count=len(decision_seconds),
        avg_decision_time_seconds=average,
    )
