"""
Logo watermark compositing and batch export for property photos.

Every export is re-rendered onto a fixed 3840x2160 canvas: the photo is scaled to fit
and centered over a dark background, then the logo is composited at one of five anchor
positions with the requested size and opacity. Previews render at the photo's own size.
"""
import io
import random
import zipfile
from typing import Iterable, Iterator, List, Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas as pdf_canvas

from core.config import logger

EXPORT_WIDTH = 3840
EXPORT_HEIGHT = 2160
BACKGROUND_COLOR = (17, 17, 17)  # #111111

POSITIONS = ('top-left', 'top-right', 'bottom-left', 'bottom-right', 'center')
DEFAULT_POSITION = 'bottom-right'
DEFAULT_LOGO_SIZE = 15.0
DEFAULT_OPACITY = 100.0
MARGIN_REL = 0.03

# JPEG quality per output mode
QUALITY_SINGLE = 95
QUALITY_ZIP = 90
QUALITY_PDF = 85

EXPORT_FORMATS = ('single', 'jpeg', 'zip', 'pdf')
BATCH_DOWNLOAD_DELAY_MS = 800


class ImageDecodeError(Exception):
    """Raised when an uploaded photo cannot be decoded."""


def normalize_settings(position: Optional[str], logo_size: Optional[float], opacity: Optional[float]) -> Tuple[str, float, float]:
    pos = (position or DEFAULT_POSITION).strip().lower().replace('_', '-').replace(' ', '-')
    if pos not in POSITIONS:
        pos = DEFAULT_POSITION
    size = DEFAULT_LOGO_SIZE if logo_size is None else float(logo_size)
    size = max(1.0, min(100.0, size))
    op = DEFAULT_OPACITY if opacity is None else float(opacity)
    op = max(0.0, min(100.0, op))
    return pos, size, op


def decode_image(data: bytes) -> Image.Image:
    if not data:
        raise ImageDecodeError("empty image")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
        img = ImageOps.exif_transpose(img)
        return img.convert('RGBA')
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as ex:
        raise ImageDecodeError(f"Failed to load base image: {ex}") from ex


def load_logo(data: Optional[bytes]) -> Optional[Image.Image]:
    """Decode the logo; an unreadable logo is skipped rather than failing the export."""
    if not data:
        return None
    try:
        return decode_image(data)
    except ImageDecodeError as ex:
        logger.warning(f"[watermark] Failed to load logo image: {ex}")
        return None


def compute_logo_box(canvas_w: int, canvas_h: int, logo_w: int, logo_h: int, logo_size: float, position: str) -> Tuple[int, int, int, int]:
    """Return (x, y, width, height) of the logo on the canvas."""
    aspect = logo_w / float(logo_h or 1)
    target_w = canvas_w * logo_size / 100.0
    target_h = target_w / aspect
    margin = canvas_w * MARGIN_REL

    if position == 'top-left':
        x, y = margin, margin
    elif position == 'top-right':
        x, y = canvas_w - target_w - margin, margin
    elif position == 'bottom-left':
        x, y = margin, canvas_h - target_h - margin
    elif position == 'center':
        x, y = (canvas_w - target_w) / 2, (canvas_h - target_h) / 2
    else:
        x, y = canvas_w - target_w - margin, canvas_h - target_h - margin

    return int(round(x)), int(round(y)), max(1, int(round(target_w))), max(1, int(round(target_h)))


def _apply_opacity(img: Image.Image, opacity: float) -> Image.Image:
    if opacity >= 100.0:
        return img
    factor = opacity / 100.0
    out = img.copy()
    alpha = out.getchannel('A').point(lambda a: int(round(a * factor)))
    out.putalpha(alpha)
    return out


def render_to_canvas(
    base: Image.Image,
    logo: Optional[Image.Image] = None,
    position: str = DEFAULT_POSITION,
    logo_size: float = DEFAULT_LOGO_SIZE,
    opacity: float = DEFAULT_OPACITY,
    high_res: bool = True,
) -> Image.Image:
    """Draw the photo (and optional logo) onto a canvas and return it as RGB."""
    base = base.convert('RGBA')
    if high_res:
        W, H = EXPORT_WIDTH, EXPORT_HEIGHT
    else:
        W, H = base.size

    canvas = Image.new('RGB', (W, H), BACKGROUND_COLOR)

    if high_res:
        scale = min(W / base.width, H / base.height)
        nw = max(1, int(round(base.width * scale)))
        nh = max(1, int(round(base.height * scale)))
        x = int(round(W / 2 - (base.width / 2) * scale))
        y = int(round(H / 2 - (base.height / 2) * scale))
        resized = base.resize((nw, nh), Image.LANCZOS)
        canvas.paste(resized, (x, y), resized)
    else:
        canvas.paste(base, (0, 0), base)

    if logo is not None and opacity > 0:
        lx, ly, lw, lh = compute_logo_box(W, H, logo.width, logo.height, logo_size, position)
        mark = _apply_opacity(logo.convert('RGBA').resize((lw, lh), Image.LANCZOS), opacity)
        canvas.paste(mark, (lx, ly), mark)

    return canvas


def encode_jpeg(img: Image.Image, quality: int) -> bytes:
    buf = io.BytesIO()
    img.convert('RGB').save(buf, format='JPEG', quality=quality)
    return buf.getvalue()


def new_batch_id() -> int:
    return random.randint(1000000, 9999999)


def single_export_name(batch_id: int) -> str:
    return f"Corretor pro - {batch_id}.jpg"


def batch_jpeg_name(batch_id: int, index: int) -> str:
    return f"Corretor pro - {batch_id}-{index}.jpg"


def zip_export_name(batch_id: int) -> str:
    return f"Corretor-Pro-Lote-{batch_id}.zip"


def pdf_export_name(batch_id: int) -> str:
    return f"Corretor-Pro-Lote-{batch_id}.pdf"


def render_high_res(images: Iterable[bytes], logo: Optional[Image.Image], position: str, logo_size: float, opacity: float) -> Iterator[Image.Image]:
    """Render photos one at a time so only one 4K canvas is alive at once."""
    for raw in images:
        yield render_to_canvas(decode_image(raw), logo, position, logo_size, opacity, high_res=True)


def export_single(image: bytes, logo: Optional[Image.Image], position: str, logo_size: float, opacity: float) -> bytes:
    canvas = render_to_canvas(decode_image(image), logo, position, logo_size, opacity, high_res=True)
    return encode_jpeg(canvas, QUALITY_SINGLE)


def export_preview(image: bytes, logo: Optional[Image.Image], position: str, logo_size: float, opacity: float) -> bytes:
    canvas = render_to_canvas(decode_image(image), logo, position, logo_size, opacity, high_res=False)
    return encode_jpeg(canvas, QUALITY_SINGLE)


def export_jpeg_batch(images: List[bytes], logo: Optional[Image.Image], position: str, logo_size: float, opacity: float, batch_id: int) -> List[Tuple[str, bytes]]:
    out: List[Tuple[str, bytes]] = []
    for i, canvas in enumerate(render_high_res(images, logo, position, logo_size, opacity), start=1):
        out.append((batch_jpeg_name(batch_id, i), encode_jpeg(canvas, QUALITY_SINGLE)))
    return out


def export_zip(images: List[bytes], logo: Optional[Image.Image], position: str, logo_size: float, opacity: float) -> bytes:
    mem = io.BytesIO()
    with zipfile.ZipFile(mem, mode='w', compression=zipfile.ZIP_DEFLATED) as zf:
        for i, canvas in enumerate(render_high_res(images, logo, position, logo_size, opacity), start=1):
            zf.writestr(f"imagem-{i}.jpg", encode_jpeg(canvas, QUALITY_ZIP))
    return mem.getvalue()


def export_pdf(images: List[bytes], logo: Optional[Image.Image], position: str, logo_size: float, opacity: float) -> bytes:
    """One landscape 3840x2160 page per photo, each embedded as JPEG."""
    if not images:
        raise ImageDecodeError("no images to export")
    buf = io.BytesIO()
    doc = pdf_canvas.Canvas(buf, pagesize=(EXPORT_WIDTH, EXPORT_HEIGHT))
    for rendered in render_high_res(images, logo, position, logo_size, opacity):
        page = ImageReader(io.BytesIO(encode_jpeg(rendered, QUALITY_PDF)))
        doc.drawImage(page, 0, 0, width=EXPORT_WIDTH, height=EXPORT_HEIGHT)
        doc.showPage()
    doc.save()
    return buf.getvalue()
