"""Paginated PDF report of a snapshot, rendered with Pillow.

The report is for people, not for re-import: one section per record with its
fields and image count, preceded by the snapshot metadata.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont
from loguru import logger

from core.models import Category, Snapshot, SnapshotEntry

# A4 at 150 dpi
PAGE_SIZE = (1240, 1754)
RESOLUTION = 150.0
MARGIN = 90

_Font = ImageFont.ImageFont | ImageFont.FreeTypeFont

TITLE_COLOR = (74, 144, 226)
TEXT_COLOR = (51, 51, 51)
MUTED_COLOR = (102, 102, 102)
MEDICINE_BADGE = (16, 185, 129)
REMEDY_BADGE = (245, 158, 11)
PANEL_COLOR = (245, 245, 245)


@dataclass
class _Fonts:
    title: _Font
    heading: _Font
    body: _Font
    small: _Font


def _load_fonts() -> _Fonts:
    return _Fonts(
        title=ImageFont.load_default(size=44),
        heading=ImageFont.load_default(size=32),
        body=ImageFont.load_default(size=24),
        small=ImageFont.load_default(size=20),
    )


@dataclass
class _PageWriter:
    """Places lines top to bottom and starts a new page when one is full."""

    fonts: _Fonts
    size: tuple[int, int] = PAGE_SIZE
    pages: list[Image.Image] = field(default_factory=list)
    y: int = 0

    def __post_init__(self) -> None:
        self.new_page()

    @property
    def draw(self) -> ImageDraw.ImageDraw:
        return ImageDraw.Draw(self.pages[-1])

    @property
    def width(self) -> int:
        return self.size[0] - 2 * MARGIN

    def new_page(self) -> None:
        self.pages.append(Image.new("RGB", self.size, "white"))
        self.y = MARGIN

    def ensure_space(self, height: int) -> None:
        if self.y + height > self.size[1] - MARGIN:
            self.new_page()

    def line_height(self, font: _Font) -> int:
        _, top, _, bottom = font.getbbox("Ag")
        return int((bottom - top) * 1.5) or 12

    def wrap(self, text: str, font: _Font, width: int) -> list[str]:
        lines: list[str] = []
        for paragraph in (text or "").splitlines() or [""]:
            current = ""
            for word in paragraph.split():
                candidate = f"{current} {word}".strip()
                if current and font.getlength(candidate) > width:
                    lines.append(current)
                    current = word
                else:
                    current = candidate
            lines.append(current)
        return lines

    def text(
        self,
        text: str,
        font: _Font,
        fill: tuple[int, int, int] = TEXT_COLOR,
        indent: int = 0,
    ) -> None:
        step = self.line_height(font)
        for line in self.wrap(text, font, self.width - indent):
            self.ensure_space(step)
            self.draw.text((MARGIN + indent, self.y), line, font=font, fill=fill)
            self.y += step

    def labelled(self, label: str, value: str) -> None:
        label_text = f"{label}:"
        indent = int(self.fonts.body.getlength(label_text)) + 12
        step = self.line_height(self.fonts.body)
        self.ensure_space(step)
        self.draw.text((MARGIN, self.y), label_text, font=self.fonts.body, fill=TEXT_COLOR)
        lines = self.wrap(value, self.fonts.body, self.width - indent)
        for i, line in enumerate(lines):
            if i:
                self.ensure_space(step)
            self.draw.text((MARGIN + indent, self.y), line, font=self.fonts.body, fill=MUTED_COLOR)
            self.y += step

    def gap(self, height: int) -> None:
        self.y += height


class SnapshotReportRenderer:
    """Render a `Snapshot` into a multi-page PDF."""

    def __init__(self, page_size: tuple[int, int] = PAGE_SIZE) -> None:
        self._page_size = page_size

    def render(self, snapshot: Snapshot, target: str | Path, exported_at: datetime) -> Path:
        """Write the report to `target` and return its path."""
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        writer = _PageWriter(fonts=_load_fonts(), size=self._page_size)

        self._header(writer, exported_at)
        self._summary(writer, snapshot, exported_at)
        for entry in snapshot.entries:
            self._section(writer, entry)
        self._footer(writer)

        first, *rest = writer.pages
        first.save(str(path), "PDF", resolution=RESOLUTION, save_all=True, append_images=rest)
        logger.info("Report written: {} ({} pages)", path, len(writer.pages))
        return path

    def _header(self, w: _PageWriter, exported_at: datetime) -> None:
        w.text("MediCare Data Export", w.fonts.title, fill=TITLE_COLOR)
        w.text(
            f"Generated on {exported_at:%Y-%m-%d} at {exported_at:%H:%M:%S} UTC",
            w.fonts.body,
            fill=MUTED_COLOR,
        )
        w.gap(10)
        w.draw.line((MARGIN, w.y, w.size[0] - MARGIN, w.y), fill=TITLE_COLOR, width=3)
        w.gap(30)

    def _summary(self, w: _PageWriter, snapshot: Snapshot, exported_at: datetime) -> None:
        step = w.line_height(w.fonts.body)
        top = w.y
        w.draw.rectangle(
            (MARGIN - 10, top - 10, w.size[0] - MARGIN + 10, top + 3 * step + 10),
            fill=PANEL_COLOR,
        )
        w.labelled("Total Entries", str(snapshot.total_count))
        w.labelled("Device ID", snapshot.device_id)
        w.labelled("Export Date", f"{exported_at:%Y-%m-%d}")
        w.gap(40)

    def _section(self, w: _PageWriter, entry: SnapshotEntry) -> None:
        rec = entry.record
        heading_step = w.line_height(w.fonts.heading)
        w.ensure_space(heading_step + 3 * w.line_height(w.fonts.body))
        badge = REMEDY_BADGE if rec.category is Category.HOME_REMEDY else MEDICINE_BADGE
        w.draw.rectangle(
            (MARGIN - 10, w.y - 6, w.size[0] - MARGIN + 10, w.y + heading_step),
            fill=TITLE_COLOR,
        )
        w.draw.text((MARGIN, w.y), rec.name, font=w.fonts.heading, fill="white")
        label = rec.category.label
        label_width = int(w.fonts.small.getlength(label)) + 24
        right = w.size[0] - MARGIN
        w.draw.rounded_rectangle(
            (right - label_width, w.y + 2, right, w.y + heading_step - 8), radius=12, fill=badge
        )
        w.draw.text((right - label_width + 12, w.y + 6), label, font=w.fonts.small, fill="white")
        w.y += heading_step + 12

        w.labelled("Animal", rec.animal_type)
        w.labelled("Details", rec.details)
        if rec.purpose:
            w.labelled("Purpose", rec.purpose)
        if rec.category is Category.HOME_REMEDY and rec.preparation_method:
            w.labelled("How to Make", rec.preparation_method)
        w.labelled("Added", f"{rec.created_at:%Y-%m-%d}")
        if entry.images:
            w.labelled("Images", f"{len(entry.images)} image(s)")
        w.gap(30)

    def _footer(self, w: _PageWriter) -> None:
        w.gap(20)
        w.text(
            "This document was automatically generated by MediCare.", w.fonts.small, MUTED_COLOR
        )
