from dataclasses import dataclass, field
from typing import Literal

StickerFilter = Literal["all", "missing", "repeated"]


@dataclass
class OwnershipSnapshot:
    """
    One album instance's sticker counts at a point in time.

    Counts are stored by sticker number. A number that is absent
    counts as zero: the user does not have it.
    """

    counts: dict[int, int] = field(default_factory=dict)

    def count(self, number: int) -> int:
        """Copies held of a sticker number."""
        return self.counts.get(number, 0)

    def has(self, number: int) -> bool:
        """True if at least one copy is held."""
        return self.count(number) > 0

    def has_spare(self, number: int) -> bool:
        """True if more than one copy is held."""
        return self.count(number) > 1

    def owned_numbers(self) -> set[int]:
        return {n for n, c in self.counts.items() if c > 0}

    def spare_numbers(self) -> set[int]:
        return {n for n, c in self.counts.items() if c > 1}


@dataclass
class AlbumProgress:
    """Completion figures for an album instance."""

    total_stickers: int
    owned: int
    repeated: int

    @property
    def missing(self) -> int:
        return self.total_stickers - self.owned

    @property
    def completion_percentage(self) -> int:
        """Whole-number completion, 0 for an empty template."""
        if self.total_stickers <= 0:
            return 0
        return round(self.owned / self.total_stickers * 100)


def album_progress(snapshot: OwnershipSnapshot, total_stickers: int) -> AlbumProgress:
    """
    Summarise a snapshot against its template size.

    ``repeated`` counts surplus copies, so a sticker held three times
    contributes two.
    """
    in_range = {n: c for n, c in snapshot.counts.items() if 1 <= n <= total_stickers}
    owned = sum(1 for c in in_range.values() if c > 0)
    repeated = sum(c - 1 for c in in_range.values() if c > 1)
    return AlbumProgress(total_stickers=total_stickers, owned=owned, repeated=repeated)


def filter_numbers(
    snapshot: OwnershipSnapshot,
    total_stickers: int,
    sticker_filter: StickerFilter = "all",
) -> list[int]:
    """List the template's sticker numbers matching a view filter."""
    numbers = range(1, total_stickers + 1)
    if sticker_filter == "missing":
        return [n for n in numbers if not snapshot.has(n)]
    if sticker_filter == "repeated":
        return [n for n in numbers if snapshot.has_spare(n)]
    return list(numbers)
