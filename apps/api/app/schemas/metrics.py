from pydantic import BaseModel, Field


class TimingMetricStats(BaseModel):
    count: int
    avg_s: float = Field(description="Mean duration in seconds")
    max_s: float = Field(description="Slowest observed duration in seconds")


class MetricsResponse(BaseModel):
    """Process-local snapshot; counters reset on restart."""

    counters: dict[str, int] = Field(
        default_factory=dict,
        description=(
            "e.g. order_transitions_total:rider_accept, "
            "order_transition_rejections_total:invalid_transition, order_transition_conflicts_total"
        ),
    )
    timings: dict[str, TimingMetricStats] = Field(
        default_factory=dict,
        description="Keyed by timer name, e.g. order_action_seconds:start_delivery",
    )
