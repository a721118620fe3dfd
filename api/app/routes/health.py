from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health(request: Request) -> dict:
    engine = getattr(request.app.state, "engine", None)
    return {
        "status": "ok",
        "llm_available": bool(engine is not None and engine.llm_available),
    }
