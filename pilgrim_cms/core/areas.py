"""Feature areas: the closed set of content screens and their storage layout.

Each area fixes which categories exist, where their folders live in the
object store, which collection holds their records and how listings are
ordered. Paths and collection names must stay bit-exact with data already
written by the operator UI.
"""

from dataclasses import dataclass
from typing import Dict, List, Tuple

from ..exceptions import UnknownAreaError


@dataclass(frozen=True)
class ContentArea:
    key: str
    categories: Tuple[str, ...]
    storage_template: str
    collection_template: str
    order_field: str = "timestamp"
    descending: bool = True
    required_fields: Tuple[str, ...] = ("name",)
    blob_name: str = "content_data"

    def storage_prefix(self, category: str) -> str:
        return self.storage_template.format(category=category)

    def collection(self, category: str) -> str:
        return self.collection_template.format(category=category)

    def folder_path(self, category: str, folder_id: int) -> str:
        return f"{self.storage_prefix(category)}/{folder_id}"

    def blob_path(self, category: str, folder_id: int) -> str:
        return f"{self.folder_path(category, folder_id)}/{self.blob_name}.json"


AREAS: Dict[str, ContentArea] = {
    area.key: area
    for area in (
        ContentArea(
            key="uploads",
            categories=("hajj", "umrah", "madina", "makkah", "demo"),
            storage_template="{category}",
            collection_template="{category}_uploads",
        ),
        ContentArea(
            key="historic_places",
            categories=("makkah", "madina"),
            storage_template="historic_places_{category}",
            collection_template="historic_places_{category}",
            order_field="order",
            descending=False,
        ),
        ContentArea(
            key="live_updates",
            categories=("live_updates",),
            storage_template="live_updates",
            collection_template="live_updates",
            required_fields=("name", "date", "description"),
            blob_name="update_data",
        ),
        ContentArea(
            key="travel_advisories",
            categories=("travel_advisories",),
            storage_template="travel_advisories",
            collection_template="travel_advisories",
            order_field="order",
            descending=False,
            required_fields=("name", "date", "description"),
            blob_name="advisory_data",
        ),
        ContentArea(
            key="upcoming_events",
            categories=("upcoming_events",),
            storage_template="upcoming_events",
            collection_template="upcoming_events",
            required_fields=("name", "date", "description"),
            blob_name="event_data",
        ),
    )
}


def get_area(key: str, category: str) -> ContentArea:
    """Resolve an (area, category) pair, rejecting anything outside the closed set."""
    area = AREAS.get(key)
    if area is None:
        raise UnknownAreaError(key)
    if category not in area.categories:
        raise UnknownAreaError(key, category)
    return area


def list_areas() -> List[ContentArea]:
    return list(AREAS.values())
