from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Iterable, Iterator, List

from annotation_tool.core.exceptions import TransportError
from annotation_tool.models.annotation import Annotation

if TYPE_CHECKING:
    from annotation_tool.models.track import Track

logger = logging.getLogger(__name__)

AnnotationInput = Annotation | dict[str, Any]


class Annotations:
    """
    Ordered annotation records belonging to one track.

    The collection never sorts or filters, records keep arrival order.
    """

    def __init__(self, records: Iterable[AnnotationInput], track: Track):
        self.track = track
        self.url: str | None = None
        self._records: List[Annotation] = []
        self.set_url(track)
        self.add(records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Annotation]:
        return iter(self._records)

    def __getitem__(self, index: int) -> Annotation:
        return self._records[index]

    def set_url(self, track: Track) -> None:
        self.url = f"{track.url}/annotations"

    def get(self, annotation_id: str | int) -> Annotation | None:
        for record in self._records:
            if record.id is not None and record.id == annotation_id:
                return record
        return None

    def add(self, records: Iterable[AnnotationInput]) -> List[Annotation]:
        """Append records, skipping ids already present. Returns what was added."""
        added: List[Annotation] = []
        for record in records:
            annotation = to_annotation(record)
            if annotation.id is not None and self.get(annotation.id) is not None:
                continue
            self._records.append(annotation)
            added.append(annotation)
        return added

    def reset(self, records: Iterable[AnnotationInput] = ()) -> None:
        self._records = []
        self.add(records)

    def fetch(self, asynchronous: bool = False, add: bool = False) -> asyncio.Task | None:
        """
        Load the records stored under self.url.

        add=True merges into the current content instead of replacing it.
        asynchronous=True schedules the load on the running event loop and
        returns the task; the blocking mode returns once records are applied.
        """
        if self.url is None:
            raise TransportError("Annotations have no url to fetch from")

        if asynchronous:
            loop = asyncio.get_running_loop()
            return loop.create_task(self._fetch_async(self.url, add))

        records = self.track.ctx.transport.fetch(self.url)
        self._apply_fetched(records, add)
        return None

    async def _fetch_async(self, url: str, add: bool) -> None:
        records = await self.track.ctx.transport.afetch(url)
        self._apply_fetched(records, add)

    def _apply_fetched(self, records: List[dict[str, Any]], add: bool) -> None:
        if add:
            added = self.add(records)
            logger.debug(f"Merged {len(added)} annotations from {self.url}")
        else:
            self.reset(records)
            logger.debug(f"Loaded {len(self._records)} annotations from {self.url}")

    def to_json(self) -> List[dict[str, Any]]:
        return [record.to_json() for record in self._records]


def to_annotation(record: AnnotationInput) -> Annotation:
    if isinstance(record, Annotation):
        return record
    return Annotation.model_validate(record)
