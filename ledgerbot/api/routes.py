from fastapi import APIRouter, BackgroundTasks, Depends, Request
from loguru import logger

from ledgerbot.bot.handler import WebhookHandler
from ledgerbot.deps import get_directory, get_registrar, get_webhook_handler
from ledgerbot.groups.directory import GroupDirectoryCache
from ledgerbot.groups.registrar import MonitoringRegistrar
from ledgerbot.models.schemas import GroupSummary, MonitorGroupRequest, MonitorGroupResponse

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.post("/webhook/whatsapp")
async def whatsapp_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    handler: WebhookHandler = Depends(get_webhook_handler),
):
    payload = await request.json()
    logger.info("Webhook received: message {}", payload.get("messageId"))
    # Answer right away so Z-API does not retry; processing continues in the background
    background_tasks.add_task(handler.handle, payload)
    return {"detail": "Webhook received"}


@router.get("/groups", response_model=list[GroupSummary])
async def list_groups(directory: GroupDirectoryCache = Depends(get_directory)):
    return await directory.list_all_groups()


@router.get("/groups/available", response_model=list[GroupSummary])
async def available_groups(user_id: int, registrar: MonitoringRegistrar = Depends(get_registrar)):
    return await registrar.available_groups(user_id)


@router.post("/groups/monitor", response_model=MonitorGroupResponse, status_code=201)
async def monitor_group(
    request: MonitorGroupRequest, registrar: MonitoringRegistrar = Depends(get_registrar)
):
    group, outcome = await registrar.set_active_group(request.group_id, request.profile_id, request.user_id)
    return MonitorGroupResponse(outcome=outcome, group=group)


@router.post("/groups/refresh", response_model=list[GroupSummary])
async def refresh_groups(directory: GroupDirectoryCache = Depends(get_directory)):
    await directory.refresh(force=True)
    logger.info("Group directory refreshed on request")
    return await directory.list_all_groups()
