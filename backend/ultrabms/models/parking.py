import uuid
from enum import Enum
from typing import ClassVar, Optional

from ultrabms.core.types import ZERO, MoneyAmount
from ultrabms.models.base import Aggregate


class ParkingSpotStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    ASSIGNED = "ASSIGNED"
    UNDER_MAINTENANCE = "UNDER_MAINTENANCE"


class ParkingSpot(Aggregate):
    """Parking spot, assigned to at most one lease account."""
    KIND: ClassVar[str] = "parking_spot"

    spot_number: str
    status: ParkingSpotStatus = ParkingSpotStatus.AVAILABLE
    lease_account_id: Optional[uuid.UUID] = None
    monthly_fee: MoneyAmount = ZERO
