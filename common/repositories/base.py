from contextlib import asynccontextmanager
from typing import Generic, TypeVar, Optional, List, Type, AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete
from pydantic import BaseModel

from common.core.otel_axiom_exporter import trace_span
from common.db.scoped import get_session

EntityType = TypeVar("EntityType")
DomainModelType = TypeVar("DomainModelType")
CreateModelType = TypeVar("CreateModelType", bound=BaseModel)
UpdateModelType = TypeVar("UpdateModelType", bound=BaseModel)


class BaseRepository(Generic[EntityType, DomainModelType]):
    """
    Base repository mapping SQLAlchemy entities to pydantic domain models.

    Sessions are acquired per operation through `get_session()` unless an
    explicit session is passed to the constructor, in which case the caller
    owns its lifecycle.

    Example:
        repo = ChunkRepository()
        chunks = await repo.get_by_work_id(42)  # acquires and releases
    """

    def __init__(
        self,
        entity_class: Type[EntityType],
        domain_class: Type[DomainModelType],
        db_session: Optional[AsyncSession] = None,
    ):
        self.entity_class = entity_class
        self.domain_class = domain_class
        self._explicit_session = db_session

    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield the explicit session, or a lazily acquired operation session."""
        if self._explicit_session is not None:
            yield self._explicit_session
        else:
            async with get_session() as session:
                yield session

    def _entity_to_domain(self, entity: EntityType) -> DomainModelType:
        """Convert database entity to domain model."""
        return self.domain_class.model_validate(entity)

    def _entities_to_domain(self, entities: List[EntityType]) -> List[DomainModelType]:
        """Convert list of database entities to domain models."""
        return [self._entity_to_domain(entity) for entity in entities]

    @trace_span
    async def get(self, id: int) -> Optional[DomainModelType]:
        query = select(self.entity_class).where(self.entity_class.id == id)

        async with self._get_session() as session:
            result = await session.execute(query)
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def get_by_ids(self, ids: List[int]) -> List[DomainModelType]:
        """Get multiple entities by their IDs."""
        if not ids:
            return []

        query = select(self.entity_class).where(self.entity_class.id.in_(ids))

        async with self._get_session() as session:
            result = await session.execute(query)
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def create(self, create_model: CreateModelType) -> DomainModelType:
        """Create a new entity from a typed create model."""
        data = create_model.model_dump(exclude_none=True)
        db_obj = self.entity_class(**data)
        async with self._get_session() as session:
            session.add(db_obj)
            await session.flush()
            await session.refresh(db_obj)
            return self._entity_to_domain(db_obj)

    @trace_span
    async def update(
        self, id: int, update_model: UpdateModelType
    ) -> Optional[DomainModelType]:
        """Update an entity with a typed update model (unset fields untouched)."""
        data = update_model.model_dump(exclude_unset=True)
        if not data:
            return await self.get(id)

        async with self._get_session() as session:
            result = await session.execute(
                update(self.entity_class).where(self.entity_class.id == id).values(data)
            )
            await session.flush()
            if result.rowcount == 0:
                return None
        return await self.get(id)

    @trace_span
    async def delete(self, id: int) -> bool:
        async with self._get_session() as session:
            result = await session.execute(
                delete(self.entity_class).where(self.entity_class.id == id)
            )
            await session.flush()
            return result.rowcount > 0

    @trace_span
    async def bulk_create(self, entities: List[EntityType]) -> List[DomainModelType]:
        """Bulk create entities and return domain models."""
        if not entities:
            return []

        async with self._get_session() as session:
            session.add_all(entities)
            await session.flush()  # Flush to get IDs without committing
            return self._entities_to_domain(entities)

    @trace_span
    async def bulk_create_from_models(
        self, create_models: List[CreateModelType]
    ) -> List[DomainModelType]:
        """Bulk create from create models and return domain models."""
        if not create_models:
            return []

        entities = [
            self.entity_class(**create_model.model_dump(exclude_none=True))
            for create_model in create_models
        ]
        return await self.bulk_create(entities)
