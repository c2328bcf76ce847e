"""Vendor and site master data. Thin CRUD with soft disable."""
import logging
import uuid
from typing import Optional, List, Tuple, Type, Union

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from requisition_crm.core.exceptions import NotFound, ValidationFailed
from requisition_crm.core.security import Principal
from requisition_crm.models.site import Site
from requisition_crm.models.vendor import Vendor


logger = logging.getLogger(__name__)

# Columns searched by the ``search`` filter
SEARCH_COLUMNS = {
    Vendor: (Vendor.company_name, Vendor.gst_number),
    Site: (Site.name, Site.code),
}


class ReferenceDataService:
    """Create, list, update and disable vendors or sites."""

    def __init__(self, db: AsyncSession, model: Type[Union[Vendor, Site]]):
        self.db = db
        self.model = model

    @property
    def entity_name(self) -> str:
        return self.model.__name__

    async def get(self, entity_id: uuid.UUID):
        entity = await self.db.get(self.model, entity_id)
        if entity is None:
            raise NotFound(self.entity_name, entity_id)
        return entity

    async def list(
        self,
        is_active: Optional[bool] = True,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List, int]:
        query = select(self.model)
        count_query = select(func.count(self.model.id))

        filters = []
        if is_active is not None:
            filters.append(self.model.is_active == is_active)
        if search:
            filters.append(or_(*(col.ilike(f"%{search}%") for col in SEARCH_COLUMNS[self.model])))
        if filters:
            query = query.where(*filters)
            count_query = count_query.where(*filters)

        total = (await self.db.execute(count_query)).scalar() or 0
        order_column = SEARCH_COLUMNS[self.model][0]
        result = await self.db.execute(query.order_by(order_column).offset(skip).limit(limit))
        return list(result.scalars().all()), total

    async def create(self, data: dict, principal: Principal):
        entity = self.model(**data, created_by=principal.id, is_active=True)
        self.db.add(entity)
        await self._flush()
        logger.info("Created %s %s by %s", self.entity_name, entity.id, principal.id)
        return entity

    async def update(self, entity_id: uuid.UUID, changes: dict, principal: Principal):
        entity = await self.get(entity_id)
        for field, value in changes.items():
            setattr(entity, field, value)
        await self._flush()
        logger.info("Updated %s %s fields %s by %s", self.entity_name, entity.id, sorted(changes), principal.id)
        return entity

    async def disable(self, entity_id: uuid.UUID, principal: Principal):
        entity = await self.get(entity_id)
        entity.is_active = False
        await self.db.flush()
        logger.info("Disabled %s %s by %s", self.entity_name, entity.id, principal.id)
        return entity

    async def _flush(self) -> None:
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise ValidationFailed(
                f"{self.entity_name} conflicts with an existing record",
                {"error": str(e.orig)}
            ) from e
