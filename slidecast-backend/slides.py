"""
Blackboard slide rendering and mascot compositing.
"""

import io
import logging
import random
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from config import SLIDE_FONT_PATH, SLIDE_HEIGHT, SLIDE_TEXTURE_SEED, SLIDE_WIDTH


class RenderError(RuntimeError):
    """Raised when a slide's drawing surface cannot be created."""


class CompositeError(RuntimeError):
    """Raised when a slide or mascot image cannot be decoded."""


BREAK_CHARS = " ,.!?"
_UNIT_SPLIT = re.compile(r"[\s,.!?]")

WOOD_STOPS = [
    (0.0, (0x8B, 0x45, 0x13)),
    (0.3, (0xA0, 0x52, 0x2D)),
    (0.7, (0xCD, 0x85, 0x3F)),
    (1.0, (0xDE, 0xB8, 0x87)),
]


@dataclass(frozen=True)
class SlideStyle:
    width: int = SLIDE_WIDTH
    height: int = SLIDE_HEIGHT
    background_color: str = "#2D5016"
    text_color: str = "#FFFFFF"
    title_font_size: int = 72
    content_font_size: int = 56
    min_font_size: int = 24
    padding: int = 80
    frame_width: int = 60
    font_path: str = SLIDE_FONT_PATH
    texture_seed: Optional[int] = SLIDE_TEXTURE_SEED


PREVIEW_STYLE = SlideStyle(width=540, height=960, title_font_size=36, content_font_size=28, padding=40, frame_width=30)


@dataclass
class SlideText:
    title: str
    content: str
    duration: int


def wrap_text(text: str, max_width: float, measure: Callable[[str], float]) -> List[str]:
    """
    Greedy character-level line breaking.

    Characters are appended until the candidate line is wider than
    ``max_width``. After a space or punctuation mark the line is also broken
    early when the next word would not fit on it. A single character wider
    than ``max_width`` still gets a line of its own.
    """
    lines: List[str] = []
    current = ""

    for i, char in enumerate(text):
        candidate = current + char
        if measure(candidate) > max_width and current:
            if current.strip():
                lines.append(current.strip())
            current = char
        else:
            current = candidate

        if char in BREAK_CHARS:
            next_unit = _UNIT_SPLIT.split(text[i + 1:], maxsplit=1)[0]
            if measure(current + next_unit) > max_width:
                if current.strip():
                    lines.append(current.strip())
                current = ""

    if current.strip():
        lines.append(current.strip())

    return lines


def _hex_to_rgb(color: str) -> Tuple[int, int, int]:
    color = color.lstrip("#")
    return tuple(int(color[i:i + 2], 16) for i in (0, 2, 4))


def _wood_color(t: float) -> Tuple[int, int, int]:
    for (start, c1), (end, c2) in zip(WOOD_STOPS, WOOD_STOPS[1:]):
        if t <= end:
            ratio = (t - start) / (end - start)
            return tuple(int(a + (b - a) * ratio) for a, b in zip(c1, c2))
    return WOOD_STOPS[-1][1]


def _load_font(path: str, size: int, bold: bool = False) -> ImageFont.ImageFont:
    """Load a truetype font, falling back to common system fonts and then Pillow's default."""
    candidates = [path] if path else []
    if bold:
        candidates += [
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
            "/System/Library/Fonts/Supplemental/Arial Bold.ttf",
            "C:/Windows/Fonts/arialbd.ttf",
        ]
    else:
        candidates += [
            "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
            "/System/Library/Fonts/Supplemental/Arial.ttf",
            "C:/Windows/Fonts/arial.ttf",
        ]

    for candidate in candidates:
        try:
            return ImageFont.truetype(candidate, size=size)
        except (OSError, IOError):
            continue
    return ImageFont.load_default(size=size)


class SlideRenderer:
    """Draws blackboard-style slides as PNG images."""

    def __init__(self, style: SlideStyle = SlideStyle()):
        self.style = style

    @property
    def board_box(self) -> Tuple[int, int, int, int]:
        frame = self.style.frame_width
        return frame, frame, self.style.width - frame, self.style.height - frame

    def _create_canvas(self) -> Image.Image:
        style = self.style
        if style.width <= 2 * style.frame_width or style.height <= 2 * style.frame_width:
            raise RenderError(f"Canvas {style.width}x{style.height} leaves no room inside a {style.frame_width}px frame")
        try:
            return Image.new("RGB", (style.width, style.height))
        except (ValueError, MemoryError) as e:
            raise RenderError(f"Could not create a {style.width}x{style.height} drawing surface: {e}") from e

    def _rng(self, slide_index: int) -> random.Random:
        if self.style.texture_seed is None:
            return random.Random()
        return random.Random(f"{self.style.texture_seed}:{slide_index}")

    def _draw_frame(self, image: Image.Image, rng: random.Random):
        width, height = image.size
        frame = self.style.frame_width
        draw = ImageDraw.Draw(image)

        # Bands of the wood gradient run from the outer edge inwards
        for offset in range(frame):
            color = _wood_color(offset / max(frame - 1, 1))
            draw.rectangle([offset, offset, width - 1 - offset, height - 1 - offset], outline=color)

        overlay = Image.new("RGBA", image.size, (0, 0, 0, 0))
        grain = ImageDraw.Draw(overlay)
        for _ in range(10):
            x = rng.random() * width
            grain.line([(x, 0), (x + rng.random() * 20 - 10, height)], fill=(139, 69, 19, 77), width=2)
        for _ in range(5):
            x = rng.random() * width
            y = rng.random() * height
            radius = rng.random() * 15 + 5
            grain.ellipse([x - radius, y - radius, x + radius, y + radius], fill=(101, 67, 33, 51))
        image.paste(Image.alpha_composite(image.convert("RGBA"), overlay).convert("RGB"))

    def _draw_board(self, image: Image.Image, rng: random.Random):
        left, top, right, bottom = self.board_box
        draw = ImageDraw.Draw(image)
        draw.rectangle([left, top, right - 1, bottom - 1], fill=_hex_to_rgb(self.style.background_color))

        speckles = Image.new("RGBA", image.size, (0, 0, 0, 0))
        speckle_draw = ImageDraw.Draw(speckles)
        for _ in range(200):
            x = int(left + rng.random() * (right - left - 1))
            y = int(top + rng.random() * (bottom - top - 1))
            speckle_draw.point((x, y), fill=(255, 255, 255, 3))
        image.paste(Image.alpha_composite(image.convert("RGBA"), speckles).convert("RGB"))

    def _draw_chalk_line(self, draw: ImageDraw.ImageDraw, start: Tuple[float, float], end: Tuple[float, float], rng: random.Random):
        segments = 20
        points = [start]
        for i in range(1, segments + 1):
            x = start[0] + (end[0] - start[0]) * (i / segments)
            y = start[1] + (end[1] - start[1]) * (i / segments) + (rng.random() - 0.5) * 2
            points.append((x, y))
        draw.line(points, fill=(255, 255, 255, 204), width=3, joint="curve")

    def fit_text(self, draw: ImageDraw.ImageDraw, text: str, size: int, max_width: float, max_height: float,
                 line_spacing: float, bold: bool = False) -> Tuple[List[str], ImageFont.ImageFont, float]:
        """
        Wrap ``text`` and shrink the font until the block fits ``max_height``.

        Below ``min_font_size`` the block is returned as is and may overflow.
        """
        while True:
            font = _load_font(self.style.font_path, size, bold=bold)
            lines = wrap_text(text, max_width, lambda s: draw.textlength(s, font=font))
            line_height = size * line_spacing
            if len(lines) * line_height <= max_height or size <= self.style.min_font_size:
                return lines, font, line_height
            size = max(self.style.min_font_size, int(size * 0.9))

    def _draw_block(self, draw: ImageDraw.ImageDraw, lines: Sequence[str], font, center_x: float, center_y: float, line_height: float):
        start_y = center_y - len(lines) * line_height / 2
        for i, line in enumerate(lines):
            draw.text((center_x, start_y + (i + 0.5) * line_height), line, font=font,
                      fill=self.style.text_color, anchor="mm")

    def render_image(self, slide: SlideText, slide_number: int, total_slides: int) -> Image.Image:
        """Render ``slide`` as the ``slide_number``-th (1-based) of ``total_slides``."""
        style = self.style
        image = self._create_canvas()
        rng = self._rng(slide_number - 1)

        self._draw_frame(image, rng)
        self._draw_board(image, rng)

        left, top, right, bottom = self.board_box
        board_width = right - left
        board_height = bottom - top
        center_x = left + board_width / 2
        text_width = board_width - style.padding * 2
        draw = ImageDraw.Draw(image, "RGBA")

        counter_font = _load_font(style.font_path, int(style.content_font_size * 0.6))
        draw.text((right - style.padding / 2, top + style.padding / 2), f"{slide_number}/{total_slides}",
                  font=counter_font, fill=style.text_color, anchor="rm")

        title_lines, title_font, title_line_height = self.fit_text(
            draw, slide.title, style.title_font_size, text_width, board_height * 0.16, 1.2, bold=True
        )
        self._draw_block(draw, title_lines, title_font, center_x, top + board_height * 0.2, title_line_height)

        divider_y = top + board_height * 0.28
        self._draw_chalk_line(draw, (left + style.padding, divider_y), (right - style.padding, divider_y), rng)

        content_lines, content_font, content_line_height = self.fit_text(
            draw, slide.content, style.content_font_size, text_width, board_height * 0.34, 1.4
        )
        self._draw_block(draw, content_lines, content_font, center_x, top + board_height * 0.45, content_line_height)

        footer_font = _load_font(style.font_path, int(style.content_font_size * 0.7))
        draw.text((center_x, bottom - style.padding / 2), f"{slide.duration}s",
                  font=footer_font, fill=style.text_color, anchor="mm")

        return image

    def render(self, slide: SlideText, slide_number: int, total_slides: int) -> bytes:
        """Render a slide and return it as PNG bytes."""
        return to_png(self.render_image(slide, slide_number, total_slides))

    def render_all(self, slides: Sequence[SlideText]) -> List[bytes]:
        total = len(slides)
        return [self.render(slide, i + 1, total) for i, slide in enumerate(slides)]


def to_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def _decode(data: bytes, label: str) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise CompositeError(f"Could not decode {label} image: {e}") from e
    return image.convert("RGBA")


class MascotCompositor:
    """Overlays a mascot image onto the bottom center of a rendered slide."""

    SIZE_RATIO = 0.18
    BOTTOM_MARGIN = 50
    OPACITY = 0.95

    def __init__(self, frame_width: int = SlideStyle.frame_width):
        self.frame_width = frame_width

    def placement(self, width: int, height: int) -> Tuple[int, int, int]:
        """Return ``(x, y, side)`` of the mascot square on a ``width`` x ``height`` slide."""
        side = round(height * self.SIZE_RATIO)
        x = (width - side) // 2
        y = height - self.frame_width - side - self.BOTTOM_MARGIN
        return x, y, side

    def composite(self, slide_png: bytes, mascot: Optional[bytes]) -> bytes:
        if not mascot:
            return slide_png

        base = _decode(slide_png, "slide")
        overlay_image = _decode(mascot, "mascot")

        x, y, side = self.placement(*base.size)
        overlay_image = overlay_image.resize((side, side), Image.LANCZOS)
        alpha = overlay_image.getchannel("A").point(lambda a: round(a * self.OPACITY))
        overlay_image.putalpha(alpha)

        layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
        layer.paste(overlay_image, (x, y))
        return to_png(Image.alpha_composite(base, layer).convert("RGB"))

    def composite_batch(self, slides: Sequence[bytes], mascots: Dict[int, bytes]) -> List[bytes]:
        """
        Composite ``mascots[i]`` onto ``slides[i]`` for every index present.

        A slide whose compositing fails is kept uncomposited.
        """
        results = []
        for index, slide_png in enumerate(slides):
            try:
                results.append(self.composite(slide_png, mascots.get(index)))
            except CompositeError as e:
                logging.warning(f"⚠️ Mascot compositing failed for slide {index}, using plain slide: {e}")
                results.append(slide_png)
        return results
