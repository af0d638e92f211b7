"""
Service: similarity.py
Rôle:
- Scoreur image : comparaison perceptuelle pixel à pixel sur images normalisées.
- Scoreur texte : ratio de distance d'édition (Levenshtein) sur chaînes normalisées.

Contrats:
- Les deux scoreurs renvoient un float dans [0, 1] (1 = identique).
- Les seuils d'acceptation ne sont PAS appliqués ici (cf. settings / moteur).

Image:
- Décodage Pillow, redimensionnement "cover" (recadrage centré) en carré
  `IMAGE_SIZE`, ajout d'un canal alpha.
- Delta couleur en espace YIQ après mélange sur fond blanc, pixel en écart si
  delta > 35215 * seuil² (35215 = delta YIQ maximal possible).
- Image illisible → `DecodeFailure`.
"""
from __future__ import annotations

import io
import re
import unicodedata
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from geohunt.config.settings import settings
from .errors import DecodeFailure

ImageSource = Union[str, Path, bytes]

MAX_YIQ_DELTA = 35215.0


# -------------------- image --------------------

def _open_image(source: ImageSource, size: int) -> Image.Image:
    """Décode puis normalise une image (carré `size`, RGBA)."""
    try:
        if isinstance(source, (bytes, bytearray)):
            img = Image.open(io.BytesIO(source))
        else:
            img = Image.open(source)
        img.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeFailure(f"cannot decode image: {exc}") from exc
    img = ImageOps.exif_transpose(img)
    return ImageOps.fit(img.convert("RGBA"), (size, size), method=Image.Resampling.LANCZOS)


def _blend_on_white(rgba: np.ndarray) -> np.ndarray:
    alpha = rgba[..., 3:4] / 255.0
    return 255.0 + (rgba[..., :3] - 255.0) * alpha


def _yiq_delta(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Delta couleur pondéré (YIQ) entre deux tableaux RGB (H, W, 3)."""
    diff = a - b
    dr, dg, db = diff[..., 0], diff[..., 1], diff[..., 2]
    y = dr * 0.29889531 + dg * 0.58662247 + db * 0.11448223
    i = dr * 0.59597799 - dg * 0.27417610 - db * 0.32180189
    q = dr * 0.21147017 - dg * 0.52261711 + db * 0.31114694
    return 0.5053 * y * y + 0.299 * i * i + 0.1957 * q * q


def count_mismatched_pixels(reference: np.ndarray, candidate: np.ndarray, threshold: float) -> int:
    """Nombre de pixels dont l'écart YIQ dépasse le seuil (tableaux RGBA de même forme)."""
    if reference.shape != candidate.shape:
        raise ValueError("images must share the same shape")
    delta = _yiq_delta(
        _blend_on_white(reference.astype(np.float64)),
        _blend_on_white(candidate.astype(np.float64)),
    )
    max_delta = MAX_YIQ_DELTA * threshold * threshold
    return int(np.count_nonzero(delta > max_delta))


def image_similarity(
    reference: ImageSource,
    candidate: ImageSource,
    *,
    size: int | None = None,
    threshold: float | None = None,
) -> float:
    """
    Similarité perceptuelle [0, 1] entre l'image de référence et la proposition.
    Déterministe pour des entrées identiques. Lève `DecodeFailure` si l'une des
    deux images est illisible.
    """
    size = size or settings.IMAGE_SIZE
    threshold = settings.PIXEL_THRESHOLD if threshold is None else threshold
    ref = np.asarray(_open_image(reference, size))
    cand = np.asarray(_open_image(candidate, size))
    mismatch = count_mismatched_pixels(ref, cand, threshold)
    total = size * size
    return 1.0 - mismatch / total


def check_image(data: bytes) -> None:
    """Vérifie qu'un upload est décodable (sans normalisation)."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeFailure(f"cannot decode image: {exc}") from exc


# -------------------- texte --------------------

_NON_ALNUM = re.compile(r"[^\w\s]|_")
_SPACES = re.compile(r"\s+")


def normalize_text(s: str) -> str:
    """minuscules, accents retirés, ponctuation supprimée, espaces compactés."""
    decomposed = unicodedata.normalize("NFKD", (s or "").lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = _NON_ALNUM.sub("", stripped)
    return _SPACES.sub(" ", stripped).strip()


def levenshtein(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def text_similarity(a: str, b: str) -> float:
    """1 - distance / longueur max, sur chaînes normalisées (deux vides → 1.0)."""
    norm_a = normalize_text(a)
    norm_b = normalize_text(b)
    if not norm_a and not norm_b:
        return 1.0
    dist = levenshtein(norm_a, norm_b)
    return 1.0 - dist / max(len(norm_a), len(norm_b), 1)
