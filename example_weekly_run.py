"""
Example: Weekly Profiling Run

Ingests a few weeks of synthetic interaction events, runs a scheduled analysis
for one organization, prints the resulting profile and ranks metric
suggestions against a small benchmark cohort.

Tier-2 validation is enabled when an LLM is configured. Optional .env file in
the project root:
   OPENAI_API_KEY=your-api-key
   OPENAI_BASE_URL=https://api.example.com/v1
   OPENAI_MODEL_NAME=gpt-4o-mini
   OPENROUTER_API_KEY=...            (fallback, optional)
   OPENROUTER_MODEL_NAME=openai/gpt-4o-mini
"""

import logging
from datetime import datetime, timedelta, timezone

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from lib_profiling import ProfilingService
from lib_profiling.directory import (
    InMemoryBenchmarkSource,
    InMemoryOrganizationDirectory,
    InMemoryUserDirectory,
    UserRecord,
)
from lib_profiling.interaction_models import InteractionEvent
from lib_profiling.metric_models import BenchmarkObservation, OrganizationProfile


SAMPLE_MESSAGES = [
    "Thanks everyone, I'll draft the proposal tonight and send it before our sync.",
    "Could we double-check the figures? I'm not sure the forecast process is right.",
    "Great job on the release! Let's plan next quarter's goals together.",
    "Please find attached the revised schedule. Kindly confirm by Thursday.",
    "I think we should move fast here, the client is waiting on us.",
]


def build_directories() -> tuple[InMemoryUserDirectory, InMemoryOrganizationDirectory, InMemoryBenchmarkSource]:
    users = InMemoryUserDirectory([
        UserRecord(user_id="ana", organization_id="acme", country_code="ES", consent_granted=True),
        UserRecord(user_id="ben", organization_id="acme", country_code="US", consent_granted=True),
        UserRecord(user_id="cho", organization_id="acme", country_code="KR", consent_granted=False),
    ])

    peers = [
        OrganizationProfile(
            organization_id=f"peer-{i}",
            industry="consulting",
            employee_count=50 + i * 5,
            tracked_metric_ids=["client_nps", "first_contact_resolution_rate", "task_completion_rate"],
        )
        for i in range(5)
    ]
    organizations = InMemoryOrganizationDirectory([
        OrganizationProfile(
            organization_id="acme", industry="consulting", employee_count=60,
            tracked_metric_ids=["task_completion_rate"],
        ),
        *peers,
    ])

    observations = []
    for i, peer in enumerate(peers):
        for half in range(2):
            growth = 2.0 + i * 1.5 + half * 0.5
            observations.append(BenchmarkObservation(
                organization_id=peer.organization_id,
                period=f"2025-H{half + 1}",
                metric_values={
                    "client_nps": 30 + growth * 4 + (half - 0.5) * 3,
                    "first_contact_resolution_rate": 60 + (i % 3) * 5 + half * 2,
                    "task_completion_rate": 85 + growth,
                },
                revenue_growth=growth,
                retention=80 + growth,
                satisfaction=70 + growth * 2,
            ))
    return users, organizations, InMemoryBenchmarkSource(observations)


def synthetic_events(now: datetime) -> list[InteractionEvent]:
    events = []
    for user_index, user_id in enumerate(["ana", "ben", "cho"]):
        for i in range(60):
            sent_at = now - timedelta(days=27) + timedelta(hours=10 * i + user_index)
            events.append(InteractionEvent(
                user_id=user_id,
                organization_id="acme",
                channel_type="chat" if i % 3 else "email",
                content=SAMPLE_MESSAGES[(i + user_index) % len(SAMPLE_MESSAGES)],
                timestamp=sent_at,
                in_reply_to_at=sent_at - timedelta(minutes=5 + (i % 7) * 10) if i % 2 else None,
                starts_conversation=i % 6 == 0,
                joins_conversation=i % 3 == 0,
            ))
    return events


if __name__ == "__main__":
    now = datetime.now(timezone.utc)
    users, organizations, benchmarks = build_directories()
    service = ProfilingService.from_env(users, organizations, benchmarks)

    summary = service.ingest_events(synthetic_events(now))
    print(f"Ingested {summary.accepted} events ({summary.skipped_consent} skipped without consent)")

    run = service.run_analysis("acme", run_type="scheduled_weekly", as_of=now)
    print("\n" + "=" * 50)
    print(f"Run {run.run_id}: {run.status}")
    print("=" * 50)
    print(f"Processed {run.users_processed}/{run.total_users} users, "
          f"{run.tier2_invocations} Tier-2 calls, {run.tokens_consumed} tokens")

    for user_id in ("ana", "cho"):
        view = service.get_profile(user_id, "acme")
        if not view.available:
            print(f"\n{user_id}: {view.message}")
            continue
        profile = view.profile
        print(f"\n{user_id}: MBTI {profile.mbti_type}, DISC {profile.disc_primary}, "
              f"confidence {profile.overall_confidence} ({profile.status})")
        for trait in view.traits.get("big_five", []):
            print(f"  {trait.trait_id:<20} {trait.score:>3}  (confidence {trait.confidence})")

    print("\nMetric suggestions for acme:")
    for suggestion in service.suggest_metrics("acme"):
        print(f"  {suggestion.rank}. {suggestion.metric.name} "
              f"(r={suggestion.overall_correlation:.2f}, confidence {suggestion.metric.suggestion_confidence})")
        print(f"     {suggestion.rationale}")
