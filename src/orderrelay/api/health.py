"""Health check endpoint.

Learn: Reports the bus subscriber's connection state rather than pinging
Redis on every request. The supervisor already probes the connection on a
fixed interval; the health check just reads the result.
"""

from fastapi import APIRouter, Request

from orderrelay import __version__
from orderrelay.connection import ConnectionState

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Fan-out server health: bus subscriber state and client count."""
    state = request.app.state
    bus_state = state.subscriber.supervisor.state

    return {
        "status": "healthy" if bus_state == ConnectionState.CONNECTED else "degraded",
        "version": __version__,
        "bus": bus_state.value,
        "clients": len(state.registry),
        "forwarded": state.broadcaster.forwarded,
    }
