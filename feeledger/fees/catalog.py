"""Fee schedule lookup per class, with a configured default for unknown classes."""

import abc
import logging
from decimal import Decimal
from typing import Dict, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.config import Settings, settings
from feeledger.core.enums import CategoryTag
from feeledger.core.exceptions import PersistenceError
from feeledger.core.models import ClassFeeStructure
from feeledger.fees.types import FeeCategory, FeeSchedule, parse_category_tag

logger = logging.getLogger(__name__)

# Monthly transport charge per distance slab.
CONVEYANCE_SLABS: Dict[int, Decimal] = {
    0: Decimal("0"),  # None (self/private)
    1: Decimal("300"),  # 0-2 km
    2: Decimal("400"),  # 2-5 km
    3: Decimal("500"),  # 5-8 km
    4: Decimal("600"),  # 8-12 km
    5: Decimal("700"),  # >12 km
}


def conveyance_fee(slab_id: int, months: int = 10) -> Decimal:
    """Transport fee for the academic year. Unknown slabs cost nothing."""
    return CONVEYANCE_SLABS.get(slab_id, Decimal("0")) * months


def _categories_from_mapping(amounts: Mapping[str, Decimal]) -> List[FeeCategory]:
    categories = []
    for raw_name, amount in amounts.items():
        tag = parse_category_tag(raw_name)
        if tag is None or not tag.is_schedulable:
            raise ValueError(f"Unknown fee category in schedule: {raw_name!r}")
        categories.append(FeeCategory(name=tag, due_amount=Decimal(str(amount))))
    return categories


def with_conveyance(schedule: FeeSchedule, slab_id: int, months: int) -> FeeSchedule:
    """Add a transport category for the student's slab, unless the class already defines one."""
    amount = conveyance_fee(slab_id, months)
    if amount <= 0 or schedule.get(CategoryTag.TRANSPORT) is not None:
        return schedule
    return FeeSchedule(
        class_id=schedule.class_id,
        categories=[*schedule.categories, FeeCategory(name=CategoryTag.TRANSPORT, due_amount=amount)],
    )


class FeeScheduleCatalog(abc.ABC):
    """Maps a class to its fee schedule. Never returns an empty schedule for an unknown class."""

    billing_months: int = 10

    @abc.abstractmethod
    async def lookup(self, class_id: Optional[str]) -> FeeSchedule:
        ...

    async def lookup_for_student(self, class_id: Optional[str], conveyance_slab: int = 0) -> FeeSchedule:
        schedule = await self.lookup(class_id)
        return with_conveyance(schedule, conveyance_slab, self.billing_months)


class StaticFeeScheduleCatalog(FeeScheduleCatalog):
    """Schedules held in memory, typically from settings."""

    def __init__(
        self,
        schedules: Mapping[str, Mapping[str, Decimal]],
        default: Mapping[str, Decimal],
        billing_months: int = 10,
    ) -> None:
        self._schedules = {
            class_id: FeeSchedule(class_id=class_id, categories=_categories_from_mapping(amounts))
            for class_id, amounts in schedules.items()
        }
        default_categories = _categories_from_mapping(default)
        if not default_categories:
            raise ValueError("Default fee schedule must define at least one category")
        self._default_categories = default_categories
        self.billing_months = billing_months

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "StaticFeeScheduleCatalog":
        return cls(cfg.class_fee_schedules, cfg.default_fee_schedule, cfg.conveyance_billing_months)

    def default_schedule(self, class_id: Optional[str] = None) -> FeeSchedule:
        return FeeSchedule(class_id=class_id, categories=self._default_categories)

    async def lookup(self, class_id: Optional[str]) -> FeeSchedule:
        if class_id and class_id in self._schedules:
            return self._schedules[class_id]
        return self.default_schedule(class_id)


class DatabaseFeeScheduleCatalog(FeeScheduleCatalog):
    """Reads active class_fee_structures rows; classes with none fall through to the static catalog."""

    def __init__(self, db: AsyncSession, fallback: StaticFeeScheduleCatalog) -> None:
        self._db = db
        self._fallback = fallback
        self.billing_months = fallback.billing_months

    async def lookup(self, class_id: Optional[str]) -> FeeSchedule:
        if not class_id:
            return await self._fallback.lookup(class_id)
        try:
            rows = (
                await self._db.execute(
                    select(ClassFeeStructure)
                    .where(
                        ClassFeeStructure.class_name == class_id,
                        ClassFeeStructure.is_active.is_(True),
                    )
                    .order_by(ClassFeeStructure.display_order, ClassFeeStructure.category)
                )
            ).scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to load fee structure for class %s: %s", class_id, e)
            raise PersistenceError("Could not load the fee schedule") from e
        categories = []
        for row in rows:
            tag = parse_category_tag(row.category)
            if tag is None or not tag.is_schedulable:
                logger.warning("Ignoring fee structure row %s with bad category %r", row.id, row.category)
                continue
            categories.append(FeeCategory(name=tag, due_amount=Decimal(str(row.amount))))
        if not categories:
            return await self._fallback.lookup(class_id)
        return FeeSchedule(class_id=class_id, categories=categories)
