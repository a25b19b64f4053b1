"""
Calendars and services the clinic offers, looked up by their public numbers.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional

from .exceptions import ValidationError


class Catalog:
    """
    Known calendar and service numbers.

    An empty side of the catalog accepts any number, so services can run
    without a configured catalog.
    """

    def __init__(
        self,
        specialists: Optional[Mapping[str, str]] = None,
        services: Optional[Mapping[str, str]] = None,
    ):
        self.specialists: Dict[str, str] = dict(specialists or {})
        self.services: Dict[str, str] = dict(services or {})

    def calendar_ids(self) -> List[str]:
        return list(self.specialists)

    def specialist(self, calendar_id: str) -> str:
        return self.specialists.get(calendar_id, "")

    def service_name(self, service_id: str) -> str:
        return self.services.get(service_id, "")

    def check(self, calendar_id: str, service_id: str) -> None:
        """
        Raises:
            ValidationError: Unknown calendar or service number
        """
        if self.specialists and calendar_id not in self.specialists:
            raise ValidationError("El calendario solicitado no fue encontrado", invalid=["calendar"])
        if self.services and service_id not in self.services:
            raise ValidationError("El servicio solicitado no fue encontrado", invalid=["service"])
