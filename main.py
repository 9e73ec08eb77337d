"""
Cook Monitor Server
Plan endpoint, session history and the live /session websocket
"""
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from core.config import MonitorSettings
from core.db_handler import SessionDB
from core.errors import ValidationError
from core.planner import MEAT_TYPES, plan as compute_plan, summarize
from handlers.session_handler import CookSessionHandler

# Load environment variables
profile = os.getenv("PROFILE", "")
if profile == "local" or profile == "":
    load_dotenv()

logging.basicConfig(
    level=logging.DEBUG if os.getenv("DEBUG_MODE") == "true" else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("cook_monitor")

settings = MonitorSettings.from_env()
session_db = SessionDB(settings.db_path)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await session_db.init_db()
    logger.info("Connected to database %s", settings.db_path)
    yield
    await session_db.close()


# Create FastAPI app
app = FastAPI(lifespan=lifespan)


class PlanRequest(BaseModel):
    meat_type: str
    weight_lb: float
    ready_by: datetime
    target_temp_f: Optional[float] = None
    wrap_temp_f: Optional[float] = None


@app.get("/")
async def index():
    """Health check and supported meat types"""
    return {"status": "ok", "meat_types": MEAT_TYPES}


@app.post("/plan")
async def create_plan(request: PlanRequest):
    """Compute a cook plan and its summary"""
    try:
        cook_plan = compute_plan(
            meat_type=request.meat_type,
            weight_lb=request.weight_lb,
            ready_by=request.ready_by,
            target_temp_f=request.target_temp_f,
            wrap_temp_f=request.wrap_temp_f,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"plan": cook_plan.model_dump(mode="json"), "summary": summarize(cook_plan)}


@app.get("/sessions")
async def list_sessions(limit: int = 50):
    """Finished sessions, newest first"""
    records = await session_db.list_sessions(limit)
    return [
        {
            "id": record.id,
            "meat_type": record.meat_type,
            "weight_lb": record.weight_lb,
            "start_time": record.start_time.isoformat(),
            "end_time": record.end_time.isoformat() if record.end_time else None,
            "duration": record.formatted_duration,
            "readings": len(record.readings),
            "notes": len(record.notes),
        }
        for record in records
    ]


@app.get("/sessions/{session_id}")
async def get_session(session_id: str):
    record = await session_db.get_session(session_id)
    if record is None:
        raise HTTPException(status_code=404, detail="session not found")
    return record.model_dump(mode="json")


@app.websocket("/session")
async def websocket_endpoint(websocket: WebSocket):
    """
    Live cook session
    The client streams probe samples and receives status, alerts and notifications
    """
    await websocket.accept()
    handler = CookSessionHandler(websocket, session_db, settings)

    try:
        await handler.start()
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected")
    except Exception as e:
        logger.exception("WebSocket error: %s", e)
    finally:
        await handler.cleanup()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "5050"))
    logger.info("Server started at :%d", port)
    uvicorn.run(app, host="0.0.0.0", port=port)
