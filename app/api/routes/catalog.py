from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_session
from app.models.catalog import BodyPartPreparation, BodyPartPublic, ServicePublic
from app.services.catalog_service import (
    get_active_body_part,
    get_active_service,
    get_body_part_preparation,
    list_active_services,
    list_body_parts_for_service,
)

router = APIRouter(tags=["catalog"])


@router.get("/services", response_model=list[ServicePublic])
async def list_services(session: AsyncSession = Depends(get_session)) -> list[ServicePublic]:
    services = await list_active_services(session)
    return [ServicePublic.model_validate(s, from_attributes=True) for s in services]


@router.get("/services/{service_id}", response_model=ServicePublic)
async def get_service(service_id: int, session: AsyncSession = Depends(get_session)) -> ServicePublic:
    service = await get_active_service(session, service_id)
    return ServicePublic.model_validate(service, from_attributes=True)


@router.get("/services/{service_id}/body-parts", response_model=list[BodyPartPublic])
async def list_service_body_parts(
    service_id: int, session: AsyncSession = Depends(get_session)
) -> list[BodyPartPublic]:
    await get_active_service(session, service_id)
    body_parts = await list_body_parts_for_service(session, service_id)
    return [BodyPartPublic.model_validate(b, from_attributes=True) for b in body_parts]


@router.get("/body-parts/{body_part_id}", response_model=BodyPartPublic)
async def get_body_part(body_part_id: int, session: AsyncSession = Depends(get_session)) -> BodyPartPublic:
    body_part = await get_active_body_part(session, body_part_id)
    return BodyPartPublic.model_validate(body_part, from_attributes=True)


@router.get("/body-parts/{body_part_id}/preparation", response_model=BodyPartPreparation)
async def get_preparation(
    body_part_id: int, session: AsyncSession = Depends(get_session)
) -> BodyPartPreparation:
    return await get_body_part_preparation(session, body_part_id)
