from fastapi import APIRouter, Request, Response

from pulseboard.core.metrics import metrics_content

router = APIRouter(tags=["Metrics"])


@router.get("/metrics")
async def metrics() -> Response:
    return Response(content=metrics_content(), media_type="text/plain; version=0.0.4")


@router.get("/healthz")
async def healthz(request: Request) -> dict:
    runtime = getattr(request.app.state, "health", None)
    leader = runtime.leadership.is_leader() if runtime is not None else False
    return {"status": "ok", "leader": leader}
