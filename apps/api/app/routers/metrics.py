from fastapi import APIRouter, Depends

from app.auth.dependencies import AuthContext, require_roles
from app.observability import metrics_store
from app.schemas.metrics import MetricsResponse

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("", summary="Lifecycle and HTTP counters", response_model=MetricsResponse)
def metrics_endpoint(
    _auth: AuthContext = Depends(require_roles("OWNER")),
) -> MetricsResponse:
    """Counters include transitions applied, rejections by kind and conflicts."""
    snapshot = metrics_store.snapshot()

    return MetricsResponse(
        counters=snapshot.counters or {},
        timings=snapshot.timings or {},
    )
