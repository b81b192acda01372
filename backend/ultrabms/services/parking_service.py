"""
Ultra BMS - Parking Service

AVAILABLE <-> UNDER_MAINTENANCE, AVAILABLE -> ASSIGNED.
Assigned spots return to AVAILABLE only when the lease checks out;
there is no manual release.
"""

import logging
import uuid
from decimal import Decimal
from typing import Optional

from ultrabms.core.errors import AlreadyTerminated
from ultrabms.core.types import ZERO
from ultrabms.models.audit import TransitionRecord
from ultrabms.models.lease import LeaseAccount
from ultrabms.models.parking import ParkingSpot, ParkingSpotStatus
from ultrabms.services.base import LifecycleService
from ultrabms.services.fsm import TransitionContext, Trigger
from ultrabms.services.lifecycles import build_parking_machine

logger = logging.getLogger(__name__)


class ParkingService(LifecycleService):

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._spots = build_parking_machine()

    def register_spot(self, spot_number: str, monthly_fee: Decimal = ZERO) -> ParkingSpot:
        with self._persistence.transaction() as uow:
            spot = uow.add(ParkingSpot(id=self._new_id(), spot_number=spot_number, monthly_fee=monthly_fee))
        return spot

    def assign_spot(
        self,
        spot_id: uuid.UUID,
        lease_account_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
    ) -> ParkingSpot:
        """
        Assign an AVAILABLE spot to a live lease.

        Raises:
            NotFound: spot or lease missing
            AlreadyTerminated: lease is TERMINATED
            GuardRejected / InvalidTransition: spot is not AVAILABLE
        """
        trail: list[TransitionRecord] = []
        context = TransitionContext(
            today=self._clock.today(), actor_id=actor_id, trigger=Trigger.ASSIGNMENT
        )
        with self._persistence.transaction() as uow:
            lease = uow.get(LeaseAccount, lease_account_id)
            if lease.is_terminated:
                raise AlreadyTerminated(f"Lease {lease_account_id} is terminated")
            spot = uow.get(ParkingSpot, spot_id)
            spot = self._move(
                self._spots, spot, ParkingSpotStatus.ASSIGNED, context, trail,
                lease_account_id=lease_account_id,
            )
            spot = uow.save(spot)
        self._after_commit([], trail)
        logger.info(f"Parking spot {spot.spot_number} assigned to lease {lease_account_id}")
        return spot

    def start_maintenance(self, spot_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> ParkingSpot:
        return self._set_status(spot_id, ParkingSpotStatus.UNDER_MAINTENANCE, actor_id)

    def end_maintenance(self, spot_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> ParkingSpot:
        return self._set_status(spot_id, ParkingSpotStatus.AVAILABLE, actor_id)

    def _set_status(self, spot_id: uuid.UUID, target: ParkingSpotStatus, actor_id: Optional[uuid.UUID]) -> ParkingSpot:
        trail: list[TransitionRecord] = []
        context = TransitionContext(today=self._clock.today(), actor_id=actor_id)
        with self._persistence.transaction() as uow:
            spot = uow.get(ParkingSpot, spot_id)
            spot = uow.save(self._move(self._spots, spot, target, context, trail))
        self._after_commit([], trail)
        return spot

    def spots_for_lease(self, lease_account_id: uuid.UUID) -> list[ParkingSpot]:
        with self._persistence.transaction() as uow:
            return uow.find(
                ParkingSpot,
                status_in=[ParkingSpotStatus.ASSIGNED],
                lease_account_id=lease_account_id,
            )
