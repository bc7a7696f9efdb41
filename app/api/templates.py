"""
Notification template management API (admin only).
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.schemas.notification import TemplateCreate, TemplateUpdate, TemplateResponse
from app.utils.auth import get_current_admin_user
from app.utils.validators import validate_pagination_params
from app.services.audit_service import create_audit_log
from app.services.template_service import TemplateService
from app.api.deps import envelope

router = APIRouter(prefix="/notification-templates", tags=["notification-templates"])


@router.get("", summary="取得通知模板列表")
async def list_templates(
    active_only: bool = Query(False, alias="activeOnly", description="只顯示啟用中的模板"),
    trigger_event: Optional[str] = Query(None, alias="triggerEvent", description="觸發事件篩選"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    skip, limit = validate_pagination_params(skip, limit)
    templates = TemplateService(db).list_templates(active_only, trigger_event, skip, limit)
    return envelope([TemplateResponse.model_validate(t) for t in templates], "Templates retrieved successfully")


@router.get("/{template_id}", summary="取得通知模板")
async def get_template(
    template_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    template = TemplateService(db).get_template(template_id)
    return envelope(TemplateResponse.model_validate(template), "Template retrieved successfully")


@router.post("", status_code=status.HTTP_201_CREATED, summary="建立通知模板")
async def create_template(
    payload: TemplateCreate,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    data = payload.model_dump()
    data["channel"] = payload.channel.value
    template = TemplateService(db).create_template(data)

    create_audit_log(
        db,
        action="Template Created",
        resource="notification_template",
        resource_id=template.id,
        user_id=current_user.id,
        details={"template_name": template.template_name},
        organization_id=current_user.organization_id
    )
    return envelope(TemplateResponse.model_validate(template), "Template created successfully")


@router.put("/{template_id}", summary="更新通知模板")
async def update_template(
    template_id: int,
    payload: TemplateUpdate,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    data = payload.model_dump(exclude_unset=True)
    if payload.channel is not None:
        data["channel"] = payload.channel.value
    template = TemplateService(db).update_template(template_id, data)

    create_audit_log(
        db,
        action="Template Updated",
        resource="notification_template",
        resource_id=template.id,
        user_id=current_user.id,
        details={"fields": sorted(data.keys()), "version": template.version},
        organization_id=current_user.organization_id
    )
    return envelope(TemplateResponse.model_validate(template), "Template updated successfully")


@router.delete("/{template_id}", summary="停用通知模板")
async def deactivate_template(
    template_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    template = TemplateService(db).deactivate_template(template_id)

    create_audit_log(
        db,
        action="Template Deactivated",
        resource="notification_template",
        resource_id=template.id,
        user_id=current_user.id,
        organization_id=current_user.organization_id
    )
    return envelope(TemplateResponse.model_validate(template), "Template deactivated successfully")
