from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BodyPartNotFound, ServiceNotFound
from app.models.catalog import BodyPart, BodyPartPreparation, Service


async def list_active_services(session: AsyncSession) -> list[Service]:
    result = await session.execute(select(Service).where(Service.active.is_(True)).order_by(Service.name))
    return list(result.scalars().all())


async def get_active_service(session: AsyncSession, service_id: int) -> Service:
    result = await session.execute(
        select(Service).where(Service.id == service_id, Service.active.is_(True))
    )
    service = result.scalar_one_or_none()
    if service is None:
        raise ServiceNotFound(service_id=service_id)
    return service


async def list_body_parts_for_service(session: AsyncSession, service_id: int) -> list[BodyPart]:
    result = await session.execute(
        select(BodyPart)
        .where(BodyPart.service_id == service_id, BodyPart.active.is_(True))
        .order_by(BodyPart.name)
    )
    return list(result.scalars().all())


async def get_active_body_part(
    session: AsyncSession, body_part_id: int, service_id: int | None = None
) -> BodyPart:
    """Active body part by id; when service_id is given it must belong to that service."""
    q = select(BodyPart).where(BodyPart.id == body_part_id, BodyPart.active.is_(True))
    if service_id is not None:
        q = q.where(BodyPart.service_id == service_id)
    result = await session.execute(q)
    body_part = result.scalar_one_or_none()
    if body_part is None:
        raise BodyPartNotFound(body_part_id=body_part_id)
    return body_part


async def get_body_part_preparation(session: AsyncSession, body_part_id: int) -> BodyPartPreparation:
    result = await session.execute(
        select(BodyPart, Service)
        .join(Service, Service.id == BodyPart.service_id)
        .where(BodyPart.id == body_part_id, BodyPart.active.is_(True))
    )
    row = result.first()
    if row is None:
        raise BodyPartNotFound(body_part_id=body_part_id)
    body_part, service = row
    return BodyPartPreparation(
        id=body_part.id,
        name=body_part.name,
        preparation_text=body_part.preparation_text,
        service_name=service.name,
        service_duration_minutes=service.duration_minutes,
    )
