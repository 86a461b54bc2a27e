from fastapi import APIRouter, BackgroundTasks, HTTPException
from datetime import datetime
import logging

from app.utils.startup import system_initializer

logger = logging.getLogger(__name__)

router = APIRouter()

async def _initialize_quietly():
    try:
        await system_initializer.initialize()
    except Exception as e:
        logger.error(f"Background system initialization failed: {str(e)}")

@router.get("/init")
async def get_init_status(background_tasks: BackgroundTasks):
    if not system_initializer.done and not system_initializer.started:
        background_tasks.add_task(_initialize_quietly)

    return {
        "initialized": system_initializer.done,
        "timestamp": datetime.utcnow().isoformat(),
    }

@router.post("/init")
async def run_init():
    if system_initializer.done:
        return {"message": "系统已经初始化完成", "initialized": True}

    try:
        await system_initializer.initialize()
    except Exception:
        raise HTTPException(status_code=500, detail="系统初始化失败")

    return {
        "message": "系统初始化完成",
        "initialized": True,
        "timestamp": datetime.utcnow().isoformat(),
    }
