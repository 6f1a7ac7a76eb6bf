import os
from typing import Optional

from .types import EncoderConfig, ExportConfig


# Extension des fichiers de sortie selon le format Pillow
FORMAT_EXTENSIONS = {
    "TIFF": ".tif",
    "JPEG": ".jpg",
    "PNG": ".png",
    "BMP": ".bmp",
}


def build_encoder(image_format: str, tiff_compression: Optional[str] = None) -> EncoderConfig:
    fmt = image_format.upper()
    if fmt == "JPG":
        fmt = "JPEG"
    if fmt not in FORMAT_EXTENSIONS:
        raise ValueError(f"Format de sortie non supporté: {image_format}")

    params = {}
    if fmt == "TIFF" and tiff_compression and tiff_compression.lower() != "none":
        params["compression"] = tiff_compression
    return EncoderConfig(format=fmt, extension=FORMAT_EXTENSIONS[fmt], params=params)


def load_config(
    image_format: Optional[str] = None,
    tiff_compression: Optional[str] = None,
    pdf_dpi: Optional[int] = None,
    points_per_pixel: Optional[float] = None,
    start_sequence: Optional[int] = None,
) -> ExportConfig:
    encoder = build_encoder(
        image_format or os.getenv("EXPORT_IMAGE_FORMAT", "TIFF"),
        tiff_compression or os.getenv("EXPORT_TIFF_COMPRESSION", "tiff_lzw"),
    )

    cfg = ExportConfig(
        encoder=encoder,
        pdf_dpi=int(pdf_dpi or int(os.getenv("EXPORT_PDF_DPI", "600"))),
        points_per_pixel=float(points_per_pixel or float(os.getenv("EXPORT_POINTS_PER_PIXEL", "0.24"))),
        start_sequence=int(start_sequence or int(os.getenv("EXPORT_START_SEQUENCE", "1"))),
    )
    if cfg.start_sequence < 1:
        raise ValueError("EXPORT_START_SEQUENCE doit être >= 1")
    return cfg
