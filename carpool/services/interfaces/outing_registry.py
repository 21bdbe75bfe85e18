"""
Outing registry interface.
The carpool core asks it whether an outing can still carry trips.
"""

from abc import ABC, abstractmethod


class OutingRegistry(ABC):
    """
    Read-only view of outings owned by the wider application.

    Implementations:
    - SqlOutingRegistry: reads the local `outings` mirror table
    """

    @abstractmethod
    async def exists(self, outing_id: int) -> bool:
        pass

    @abstractmethod
    async def is_started(self, outing_id: int) -> bool:
        """
        Whether the outing's start time has passed.

        Args:
            outing_id: Outing to check

        Returns:
            True once no new trips or bookings may be made
        """
        pass

    @abstractmethod
    async def is_cancelled(self, outing_id: int) -> bool:
        pass
