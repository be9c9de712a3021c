"""
Prometheus metrics for the flyer ingestion pipeline.
"""

from prometheus_client import Counter, Histogram, Gauge


# ── Submissions ──────────────────────────────────────────────
submissions_uploaded_total = Counter(
    "flyerboard_submissions_uploaded_total",
    "Total bulletin-board photos accepted for processing",
)

submissions_rejected_total = Counter(
    "flyerboard_submissions_rejected_total",
    "Uploads rejected before a submission was created",
    ["error_code"],
)

submissions_processed_total = Counter(
    "flyerboard_submissions_processed_total",
    "Total submissions that reached the done state",
)

submissions_failed_total = Counter(
    "flyerboard_submissions_failed_total",
    "Total submissions that ended in the error state",
    ["error_code"],
)

submission_processing_duration_seconds = Histogram(
    "flyerboard_submission_processing_duration_seconds",
    "Time to process a submission end-to-end",
    buckets=[1, 5, 10, 30, 60, 120, 300],
)

# ── Pipeline Stages ──────────────────────────────────────────
pipeline_stage_duration_seconds = Histogram(
    "flyerboard_pipeline_stage_duration_seconds",
    "Time per pipeline stage",
    ["stage"],
    buckets=[0.1, 0.5, 1, 5, 10, 30, 60],
)

# ── Candidates ───────────────────────────────────────────────
candidate_decisions_total = Counter(
    "flyerboard_candidate_decisions_total",
    "Publish decisions taken per candidate",
    ["decision", "via"],
)

candidate_stage_failures_total = Counter(
    "flyerboard_candidate_stage_failures_total",
    "Per-candidate stage failures that were recovered locally",
    ["stage"],
)

quality_scores = Histogram(
    "flyerboard_quality_scores",
    "Distribution of candidate composite scores",
    buckets=[0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 0.95, 1.0],
)

events_promoted_total = Counter(
    "flyerboard_events_promoted_total",
    "Promotion outcomes",
    ["outcome"],
)

# ── Review Queue ─────────────────────────────────────────────
review_queue_depth = Gauge(
    "flyerboard_review_queue_depth",
    "Current number of candidates awaiting manual review",
)

# ── External Capabilities ────────────────────────────────────
capability_fallbacks_total = Counter(
    "flyerboard_capability_fallbacks_total",
    "Times a live capability fell back to its local substitute",
    ["capability", "reason"],
)

external_api_latency_seconds = Histogram(
    "flyerboard_external_api_latency_seconds",
    "Latency of external capability calls",
    ["capability", "provider"],
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30, 60],
)
