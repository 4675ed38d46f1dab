"""Built-in catalog of performance metrics.

Used as the candidate pool for metric suggestions and as the fallback list
when no benchmark cohort yields usable correlations.
"""

from __future__ import annotations

from lib_profiling.metric_models import AggregationType, FormulaDescriptor, MetricDefinition


def _metric(
    metric_id: str,
    name: str,
    description: str,
    source: str,
    field: str,
    aggregation: AggregationType,
    target: float,
    weight: float,
    confidence: int,
    lower_is_better: bool = False,
    filters: dict | None = None,
) -> MetricDefinition:
    return MetricDefinition(
        metric_id=metric_id,
        name=name,
        description=description,
        formula=FormulaDescriptor(
            source=source,
            field=field,
            filters=filters or {},
            aggregation=aggregation,
            lower_is_better=lower_is_better,
        ),
        target_value=target,
        weight=weight,
        suggestion_confidence=confidence,
    )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
DEFAULT_METRICS: dict[str, MetricDefinition] = {
    m.metric_id: m
    for m in [
        # Client service
        _metric("client_email_response_time", "Client Email Response Time",
                "Average hours to answer client emails.",
                "email", "response_hours", "average", 4, 2.0, 89,
                lower_is_better=True, filters={"direction": "outbound", "recipient": "client"}),
        _metric("client_meeting_attendance", "Client Meeting Attendance Rate",
                "Share of scheduled client meetings attended on time.",
                "calendar", "attended_on_time", "percentage", 98, 2.2, 92,
                filters={"meeting_type": "client"}),
        _metric("client_retention_rate", "Client Retention Rate",
                "Share of clients retained over the period.",
                "crm", "retained", "percentage", 95, 3.0, 94),
        _metric("client_nps", "Client Net Promoter Score",
                "Net promoter score from client surveys.",
                "surveys", "nps", "average", 60, 2.7, 92),
        _metric("client_satisfaction_score", "Client Satisfaction Score (CSAT)",
                "Average client satisfaction rating.",
                "surveys", "csat", "average", 88, 2.5, 91),
        _metric("client_escalation_rate", "Client Escalation Rate",
                "Share of client issues escalated to management.",
                "crm", "escalated", "percentage", 4, 2.0, 83, lower_is_better=True),
        _metric("first_contact_resolution_rate", "First Contact Resolution Rate",
                "Share of client requests resolved on first contact.",
                "crm", "resolved_first_contact", "percentage", 75, 1.9, 82),
        _metric("client_complaint_resolution_time", "Client Complaint Resolution Time",
                "Average hours from complaint to resolution.",
                "crm", "resolution_hours", "average", 24, 2.0, 83, lower_is_better=True),
        # Delivery
        _metric("task_completion_rate", "Task Completion Rate",
                "Share of assigned tasks completed by their due date.",
                "tasks", "completed_on_time", "percentage", 95, 2.5, 95),
        _metric("deadline_miss_rate", "Deadline Miss Rate",
                "Share of deliverables that missed their deadline.",
                "tasks", "missed_deadline", "percentage", 3, 2.4, 91, lower_is_better=True),
        _metric("document_review_turnaround", "Document Review Turnaround",
                "Average hours to review and approve submitted documents.",
                "documents", "review_hours", "average", 24, 1.8, 86, lower_is_better=True),
        _metric("qa_pass_rate", "Quality Assurance Pass Rate",
                "Share of work passing first QA review without revisions.",
                "documents", "qa_passed", "percentage", 90, 2.1, 87),
        _metric("wip_aging", "Work-in-Progress Aging",
                "Average days open work items have been in progress.",
                "tasks", "age_days", "average", 15, 2.0, 84, lower_is_better=True),
        # Finance
        _metric("billable_hours_percentage", "Billable Hours Percentage",
                "Share of worked hours billable to clients.",
                "timesheets", "billable", "percentage", 75, 2.8, 93),
        _metric("invoice_processing_speed", "Invoice Processing Speed",
                "Average hours from approval to invoice sent.",
                "billing", "processing_hours", "average", 2, 1.9, 85, lower_is_better=True),
        _metric("average_collection_period", "Average Collection Period",
                "Average days to collect receivables.",
                "billing", "collection_days", "average", 35, 2.4, 89, lower_is_better=True),
        _metric("average_project_margin", "Average Project Margin",
                "Average profit margin per project.",
                "billing", "margin_pct", "average", 42, 2.6, 90),
        _metric("proposal_win_rate", "Proposal Win Rate",
                "Share of proposals that convert to engagements.",
                "crm", "won", "percentage", 45, 2.0, 84),
        # Team
        _metric("knowledge_sharing_frequency", "Knowledge Sharing Frequency",
                "Knowledge base contributions or answered questions.",
                "knowledge_base", "contribution", "count", 3, 1.5, 78),
        _metric("staff_training_hours", "Staff Training Hours",
                "Average training hours per person.",
                "training", "hours", "average", 25, 1.7, 77),
        _metric("employee_turnover_rate", "Employee Turnover Rate",
                "Share of staff leaving over the period.",
                "hr", "left", "percentage", 12, 2.3, 86, lower_is_better=True),
        _metric("staff_utilization_rate", "Staff Utilization Rate",
                "Share of available hours spent on client work.",
                "timesheets", "utilized", "percentage", 78, 2.2, 88),
        # Communication (resolved from aggregation windows)
        _metric("internal_response_time", "Internal Response Time",
                "Average seconds to reply within internal conversations.",
                "interaction_windows", "response_time_seconds", "average", 3600, 1.8, 80,
                lower_is_better=True, filters={"channel_type": "chat"}),
        _metric("team_collaboration_score", "Team Collaboration Score",
                "Conversations joined or started per window.",
                "interaction_windows", "conversations_participated", "average", 15, 1.6, 76),
        _metric("positive_tone_share", "Positive Tone Share",
                "Share of messages classified as positive.",
                "interaction_windows", "positive_percentage", "average", 40, 1.4, 72),
    ]
}


def get_metric(metric_id: str) -> MetricDefinition | None:
    """Look up a catalog metric by id."""
    return DEFAULT_METRICS.get(metric_id)


def catalog_by_weight() -> list[MetricDefinition]:
    """Catalog metrics ordered by weight (highest first), then id."""
    return sorted(DEFAULT_METRICS.values(), key=lambda m: (-m.weight, m.metric_id))
