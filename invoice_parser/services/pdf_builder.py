from io import BytesIO
from loguru import logger
from PIL import Image, ImageOps


def build_pdf_from_images(images: list[bytes]) -> bytes:
    """Assembles page images, in the given order, into one multi-page PDF."""
    if not images:
        raise ValueError("At least one page image is required")

    pages = []
    for data in images:
        with Image.open(BytesIO(data)) as img:
            # Phone captures carry their rotation in EXIF
            pages.append(ImageOps.exif_transpose(img).convert("RGB"))

    buffer = BytesIO()
    pages[0].save(buffer, format="PDF", save_all=True, append_images=pages[1:])
    logger.info("Assembled PDF from page images", pages=len(pages), size_bytes=buffer.tell())
    return buffer.getvalue()
