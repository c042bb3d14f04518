"""Calendar grid geometry: minutes <-> pixels and snap-to-grid."""

import datetime as dt
import math

from groom_route.scheduling.models import GridPosition
from groom_route.scheduling.timeutils import format_minutes


class CalendarGrid:
    """A fixed day window rendered at a configurable vertical scale.

    Times are minutes from midnight unless a method says otherwise; pixel
    offsets are measured from the top of the day window.
    """

    def __init__(
        self,
        day_start_minutes: int = 6 * 60,
        day_end_minutes: int = 22 * 60,
        resolution_minutes: int = 15,
        pixels_per_hour: float = 60.0,
        min_block_height_px: float = 24.0,
    ) -> None:
        if resolution_minutes <= 0:
            raise ValueError("resolution_minutes must be positive")
        if day_start_minutes >= day_end_minutes:
            raise ValueError("day window must start before it ends")
        if day_start_minutes % resolution_minutes or day_end_minutes % resolution_minutes:
            raise ValueError("day window bounds must fall on the grid resolution")
        if pixels_per_hour <= 0:
            raise ValueError("pixels_per_hour must be positive")

        self.day_start_minutes = day_start_minutes
        self.day_end_minutes = day_end_minutes
        self.resolution_minutes = resolution_minutes
        self.pixels_per_hour = pixels_per_hour
        self.min_block_height_px = min_block_height_px

    @classmethod
    def from_settings(cls, pixels_per_hour: float | None = None) -> "CalendarGrid":
        """Grid configured from application settings (scale may vary by viewport)."""
        from groom_route.config import get_settings

        settings = get_settings()
        return cls(
            day_start_minutes=settings.day_start_minutes,
            day_end_minutes=settings.day_end_minutes,
            resolution_minutes=settings.grid_resolution_minutes,
            pixels_per_hour=pixels_per_hour or settings.pixels_per_hour,
            min_block_height_px=settings.min_block_height_px,
        )

    @property
    def total_height(self) -> float:
        return self.minutes_to_pixels(self.day_end_minutes - self.day_start_minutes)

    def minutes_to_pixels(self, minutes_from_day_start: float) -> float:
        return minutes_from_day_start * self.pixels_per_hour / 60

    def pixels_to_minutes(self, pixels: float) -> float:
        return pixels * 60 / self.pixels_per_hour

    def snap_to_grid(self, minutes: float) -> int:
        """Nearest grid multiple (halves round up), clamped into the day window."""
        r = self.resolution_minutes
        snapped = math.floor(minutes / r + 0.5) * r
        return min(max(snapped, self.day_start_minutes), self.day_end_minutes)

    def height_for_duration(self, minutes: float) -> float:
        """Block height for a duration, never below the minimum render height."""
        return max(self.minutes_to_pixels(minutes), self.min_block_height_px)

    def position_for_time(self, minutes: int) -> GridPosition:
        offset = minutes - self.day_start_minutes
        return GridPosition(
            minutes_from_day_start=offset,
            pixels=self.minutes_to_pixels(offset),
        )

    def time_for_offset(self, y: float) -> int:
        """Snapped time of day under a vertical pixel offset."""
        return self.snap_to_grid(self.day_start_minutes + self.pixels_to_minutes(y))

    def date_for_offset(
        self,
        x: float,
        first_day: dt.date,
        column_width: float,
        days: int = 7,
    ) -> dt.date:
        """Day column under a horizontal pixel offset in a multi-day view."""
        if column_width <= 0:
            raise ValueError("column_width must be positive")
        column = min(max(int(x // column_width), 0), days - 1)
        return first_day + dt.timedelta(days=column)

    def slot_labels(self, step_minutes: int = 60) -> list[str]:
        """Row labels from the start of the day window to its end."""
        return [
            format_minutes(m)
            for m in range(self.day_start_minutes, self.day_end_minutes + 1, step_minutes)
        ]
