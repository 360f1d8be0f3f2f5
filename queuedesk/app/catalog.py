# queuedesk/app/catalog.py
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Sequence

from .errors import UnknownService
from .schemas import ServiceRequest


@dataclass(frozen=True)
class Counter:
    """A service point with room for exactly one visitor at a time."""
    name: str
    service_classes: FrozenSet[str]

    def can_serve(self, service: ServiceRequest) -> bool:
        return service.counter_class in self.service_classes


@dataclass(frozen=True)
class CatalogItem:
    name: str
    category: str
    counter_class: str
    avg_minutes: int

    def to_request(self) -> ServiceRequest:
        return ServiceRequest(name=self.name, counter_class=self.counter_class, avg_minutes=self.avg_minutes)


class ServiceCatalog:
    """Service menu plus the counters able to fulfil it, in declared order."""

    def __init__(self, items: Iterable[CatalogItem], counters: Sequence[Counter]):
        self.items: Dict[str, CatalogItem] = {}
        for item in items:
            self.items[item.name] = item
        self.counters: List[Counter] = list(counters)

    def lookup(self, name: str) -> CatalogItem:
        item = self.items.get(name)
        if item is None:
            raise UnknownService(name)
        return item

    def requests_for(self, names: Iterable[str]) -> List[ServiceRequest]:
        return [self.lookup(n).to_request() for n in names]

    def categories(self) -> Dict[str, List[CatalogItem]]:
        out: Dict[str, List[CatalogItem]] = {}
        for item in self.items.values():
            out.setdefault(item.category, []).append(item)
        return out


def _counter(name: str, *classes: str) -> Counter:
    return Counter(name=name, service_classes=frozenset(classes))


DEFAULT_COUNTERS = [
    _counter("Room 1", "general-physician", "annual-physical"),
    _counter("Room 2", "cardiology"),
    _counter("Room 3", "dermatology"),
    _counter("Room 4", "pediatrics"),
    _counter("Room 5", "vaccination"),
    _counter("Lab", "blood-test"),
    _counter("Imaging", "x-ray", "ultrasound"),
    _counter("Pharmacy Counter", "prescription", "otc"),
]

DEFAULT_ITEMS = [
    CatalogItem("General Physician", "Consultation", "general-physician", 15),
    CatalogItem("Cardiology", "Consultation", "cardiology", 25),
    CatalogItem("Dermatology", "Consultation", "dermatology", 20),
    CatalogItem("Pediatrics", "Consultation", "pediatrics", 15),
    CatalogItem("Blood Test", "Diagnostics", "blood-test", 10),
    CatalogItem("X-Ray", "Diagnostics", "x-ray", 15),
    CatalogItem("Ultrasound", "Diagnostics", "ultrasound", 20),
    CatalogItem("Prescription Pickup", "Pharmacy", "prescription", 5),
    CatalogItem("Over-the-counter", "Pharmacy", "otc", 3),
    CatalogItem("Annual Physical", "General Check-up", "annual-physical", 30),
    CatalogItem("Vaccination", "General Check-up", "vaccination", 10),
]


def default_catalog() -> ServiceCatalog:
    return ServiceCatalog(DEFAULT_ITEMS, DEFAULT_COUNTERS)
