"""Health and readiness endpoints."""

from fastapi import APIRouter, HTTPException

from ..controller import get_controller

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Liveness probe: ok mientras el proceso esté vivo."""
    return {"status": "ok"}


@router.get("/ready")
def ready():
    """Readiness probe: al menos un adapter con su runner vivo."""
    controller = get_controller()
    if controller is None or not controller.running_adapters:
        raise HTTPException(status_code=503, detail="not ready")
    return {"status": "ready", "adapters": controller.running_adapters}


@router.get("/health/adapters")
def adapters_health():
    """Estado de salud por adapter.

    Returns:
        {"healthy": bool, "adapters": {nombre: HealthState.to_dict() + stats}}
    """
    controller = get_controller()
    if controller is None:
        return {"healthy": False, "reason": "Not initialized", "adapters": {}}

    snapshot = controller.health_snapshot()
    stats = controller.stats
    adapters = {
        name: {**state.to_dict(), "running": stats[name]["running"], "start_error": stats[name]["start_error"]}
        for name, state in snapshot.items()
    }
    return {
        "healthy": all(state.healthy for state in snapshot.values()),
        "adapters": adapters,
    }
