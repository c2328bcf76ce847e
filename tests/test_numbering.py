import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy import event, select

from requisition_crm.core.exceptions import ValidationFailed
from requisition_crm.database import Base, build_engine, build_session_factory
from requisition_crm.models.document_sequence import (
    DocumentScope, DocumentSequence, DocumentSequenceAudit, format_document_number,
)
from requisition_crm.services.document_sequence_service import DocumentSequenceService


FY = "25-26"


@pytest.mark.parametrize("when,expected", [
    (datetime(2026, 1, 15, tzinfo=timezone.utc), "25-26"),
    (datetime(2026, 3, 31, 23, 59, tzinfo=timezone.utc), "25-26"),
    (datetime(2026, 4, 1, tzinfo=timezone.utc), "26-27"),
    (datetime(2099, 12, 1, tzinfo=timezone.utc), "99-00"),
])
def test_financial_year(when, expected):
    assert DocumentSequence.get_financial_year(when) == expected


def test_format():
    assert format_document_number("PO", FY, 7, 4, "-") == "PO-25-26-0007"
    assert format_document_number("DC", FY, 12345, 4, "-") == "DC-25-26-12345"


async def test_sequential_numbers(db):
    service = DocumentSequenceService(db)
    assert await service.next_number("PO", period=FY) == "PO-25-26-0001"
    assert await service.next_number("PO", period=FY) == "PO-25-26-0002"
    assert await service.current_number("PO", period=FY) == 2


async def test_scopes_and_periods_are_independent(db):
    service = DocumentSequenceService(db)
    assert await service.next_number(DocumentScope.REQUEST, period=FY) == "REQ-25-26-0001"
    assert await service.next_number(DocumentScope.PURCHASE_ORDER, period=FY) == "PO-25-26-0001"
    assert await service.next_number(DocumentScope.PURCHASE_ORDER, period="26-27") == "PO-26-27-0001"


async def test_preview_reserves_nothing(db):
    service = DocumentSequenceService(db)
    assert await service.preview_next_number("DC", period=FY) == "DC-25-26-0001"
    assert await service.preview_next_number("DC", period=FY) == "DC-25-26-0001"
    assert await service.next_number("DC", period=FY) == "DC-25-26-0001"
    assert await service.preview_next_number("DC", period=FY) == "DC-25-26-0002"


async def test_initialize_continues_from_migrated_data(db):
    service = DocumentSequenceService(db)
    await service.initialize_sequence("PO", starting_number=41, period=FY)
    assert await service.next_number("PO", period=FY) == "PO-25-26-0042"
    await db.flush()

    result = await db.execute(
        select(DocumentSequenceAudit.operation).order_by(DocumentSequenceAudit.new_number)
    )
    assert list(result.scalars()) == ["INITIALIZE", "GET_NEXT"]


async def test_initialize_rejects_negative(db):
    with pytest.raises(ValidationFailed):
        await DocumentSequenceService(db).initialize_sequence("PO", starting_number=-1)


async def test_scope_is_case_insensitive(db):
    assert await DocumentSequenceService(db).next_number("po", period=FY) == "PO-25-26-0001"


async def test_unknown_scope(db):
    with pytest.raises(ValidationFailed):
        await DocumentSequenceService(db).next_number("INV")


async def test_custom_format(db):
    service = DocumentSequenceService(db, separator="/", padding=5)
    assert await service.next_number("REQ", period=FY) == "REQ/25-26/00001"


async def test_allocation_rolls_back_with_caller(session_factory):
    async with session_factory() as session:
        await DocumentSequenceService(session).initialize_sequence("PO", period=FY)
        await session.commit()

    async with session_factory() as session:
        await DocumentSequenceService(session).next_number("PO", period=FY)
        await session.rollback()

    async with session_factory() as session:
        assert await DocumentSequenceService(session).next_number("PO", period=FY) == "PO-25-26-0001"


@pytest.fixture
async def immediate_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'numbers.db'}")

    # Take the write lock up front so waiting writers queue instead of deadlocking
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


async def test_concurrent_allocations_are_distinct(immediate_engine):
    factory = build_session_factory(immediate_engine)
    async with factory() as session:
        await DocumentSequenceService(session).initialize_sequence("PO", period=FY)
        await session.commit()

    async def allocate():
        async with factory() as session:
            number = await DocumentSequenceService(session).next_number("PO", period=FY)
            await session.commit()
            return number

    numbers = await asyncio.gather(*(allocate() for _ in range(8)))

    assert len(set(numbers)) == 8
    assert sorted(numbers) == [f"PO-25-26-{n:04d}" for n in range(1, 9)]
