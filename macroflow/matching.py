# matching

import cv2
import math
import numpy as np


from   PIL      import Image
from   pydantic import BaseModel
from   typing   import Optional, Sequence, Tuple


EXACT_MATCH_THRESHOLD : float           = 0.99
MIN_CORRELATION       : float           = -1.0
MAX_TOLERANCE         : int             = 255
DEFAULT_SCALES        : Tuple[float, ...] = (1.0, 0.5)
DEFAULT_MAX_SAMPLES   : int             = 10000
ALPHA_CUTOFF          : int             = 128


class TemplateMatch(BaseModel):
	"""Best template location, in automation (logical) coordinates relative to the haystack origin"""
	x      : int
	y      : int
	width  : int
	height : int
	score  : float
	scale  : float


def load_image(path: str) -> np.ndarray:
	"""Read an image file as an RGB uint8 array"""
	with Image.open(path) as image:
		return np.array(image.convert("RGB"))


def load_template(path: str) -> np.ndarray:
	"""Read a search template, keeping its alpha channel (RGBA) when it has one"""
	with Image.open(path) as image:
		if "A" in image.getbands() or "transparency" in image.info:
			return np.array(image.convert("RGBA"))
		return np.array(image.convert("RGB"))


def alpha_mask(template: np.ndarray) -> Optional[np.ndarray]:
	"""
	Matching mask of an RGBA template: pixels with alpha >= 128 take part, the
	rest are ignored. None when the template is fully opaque or has no alpha.
	"""
	template = np.asarray(template)
	if template.ndim != 3 or template.shape[2] != 4:
		return None
	mask = template[..., 3] >= ALPHA_CUTOFF
	if mask.all():
		return None
	return mask.astype(np.float32)


def to_gray(pixels: np.ndarray) -> np.ndarray:
	pixels = np.asarray(pixels)
	if pixels.ndim == 3:
		if pixels.shape[2] == 4:
			pixels = cv2.cvtColor(pixels, cv2.COLOR_RGBA2GRAY)
		else:
			pixels = cv2.cvtColor(pixels, cv2.COLOR_RGB2GRAY)
	return pixels.astype(np.float32)


def tolerance_to_threshold(tolerance: float) -> float:
	"""
	Map a 0-255 pixel tolerance onto a correlation acceptance threshold.

	0 demands a near-exact match, 255 accepts anything (the lowest possible
	normalized correlation).
	"""
	tolerance = min(max(float(tolerance), 0.0), float(MAX_TOLERANCE))
	return EXACT_MATCH_THRESHOLD - (tolerance / MAX_TOLERANCE) * (EXACT_MATCH_THRESHOLD - MIN_CORRELATION)


def _score_map(haystack: np.ndarray, template: np.ndarray, mask: Optional[np.ndarray] = None) -> np.ndarray:
	visible = template if mask is None else template[mask > 0]
	# Normalized correlation is undefined for a flat template, score by mean pixel distance instead
	if float(visible.std()) < 1e-6:
		sqdiff = cv2.matchTemplate(haystack, template, cv2.TM_SQDIFF, mask=mask)
		scores = 1.0 - np.sqrt(np.maximum(sqdiff, 0) / visible.size) / 255.0
	else:
		scores = cv2.matchTemplate(haystack, template, cv2.TM_CCOEFF_NORMED, mask=mask)
	return np.nan_to_num(scores, nan=MIN_CORRELATION, posinf=MIN_CORRELATION, neginf=MIN_CORRELATION)


def match_template(
	haystack    : np.ndarray,
	template    : np.ndarray,
	tolerance   : float           = 0,
	scales      : Sequence[float] = DEFAULT_SCALES,
	pixel_ratio : float           = 1.0,
) -> Optional[TemplateMatch]:
	"""
	Multi-scale template search.

	The haystack is searched at its native scale first and then at each
	reduced scale; the first scale whose best score clears the threshold wins,
	otherwise the best candidate over all scales is kept if it clears it.
	Coordinates are mapped back from the scaled haystack to physical pixels and
	then divided by pixel_ratio, the physical-per-logical pixel density of the
	capture. Transparent pixels of an RGBA template (alpha < 128) are left out
	of the comparison; a template with no opaque pixel never matches.
	The template keeps its size at every scale, so its mask does too.
	"""
	threshold = tolerance_to_threshold(tolerance)
	mask      = alpha_mask(template)
	if mask is not None and not mask.any():
		return None
	hay_gray  = to_gray(haystack)
	tpl_gray  = to_gray(np.asarray(template)[..., :3] if np.ndim(template) == 3 else template)
	th, tw    = tpl_gray.shape[:2]
	ratio     = pixel_ratio if pixel_ratio and pixel_ratio > 0 else 1.0

	best : Optional[TemplateMatch] = None
	for scale in scales:
		if scale <= 0:
			continue
		if scale == 1.0:
			scaled = hay_gray
		else:
			size = (int(round(hay_gray.shape[1] * scale)), int(round(hay_gray.shape[0] * scale)))
			if size[0] <= 0 or size[1] <= 0:
				continue
			scaled = cv2.resize(hay_gray, size, interpolation=cv2.INTER_AREA)
		if scaled.shape[0] < th or scaled.shape[1] < tw:
			continue

		scores = _score_map(scaled, tpl_gray, mask)
		_, score, _, location = cv2.minMaxLoc(scores)
		candidate = TemplateMatch(
			x      = int(round(location[0] / scale / ratio)),
			y      = int(round(location[1] / scale / ratio)),
			width  = int(round(tw / scale / ratio)),
			height = int(round(th / scale / ratio)),
			score  = float(score),
			scale  = float(scale),
		)
		if candidate.score >= threshold:
			return candidate
		if best is None or candidate.score > best.score:
			best = candidate

	if best is not None and best.score >= threshold:
		return best
	return None


def find_template(
	haystack    : np.ndarray,
	template    : np.ndarray,
	tolerance   : float           = 0,
	scales      : Sequence[float] = DEFAULT_SCALES,
	pixel_ratio : float           = 1.0,
) -> Optional[Tuple[int, int, float]]:
	"""Top-left (x, y, score) of the best match above threshold, or None"""
	match = match_template(haystack, template, tolerance, scales, pixel_ratio)
	if match is None:
		return None
	return match.x, match.y, match.score


def color_matches(pixel: Sequence[int], color: Sequence[int], tolerance: int) -> bool:
	return all(abs(int(p) - int(c)) <= tolerance for p, c in zip(pixel[:3], color[:3]))


def find_color(pixels: np.ndarray, color: Sequence[int], tolerance: int) -> Optional[Tuple[int, int]]:
	"""First pixel in row-major order within tolerance of color on every channel"""
	pixels = np.asarray(pixels)[..., :3].astype(np.int16)
	target = np.array(color[:3], dtype=np.int16)
	mask   = np.all(np.abs(pixels - target) <= int(tolerance), axis=-1)
	hits   = np.argwhere(mask)
	if hits.size == 0:
		return None
	y, x = hits[0]
	return int(x), int(y)


def compare_images(first: np.ndarray, second: np.ndarray, tolerance: int, max_samples: int = DEFAULT_MAX_SAMPLES) -> float:
	"""
	Share of sampled pixels whose channels all differ by at most tolerance.
	Images of different sizes are not similar at all.
	"""
	first  = np.asarray(first )[..., :3]
	second = np.asarray(second)[..., :3]
	if first.shape != second.shape:
		return 0.0

	height, width = first.shape[:2]
	total = height * width
	if total == 0:
		return 0.0

	flat_first  = first .reshape(total, -1).astype(np.int16)
	flat_second = second.reshape(total, -1).astype(np.int16)
	if total > max_samples:
		step        = math.ceil(total / max_samples)
		flat_first  = flat_first [::step]
		flat_second = flat_second[::step]

	close = np.all(np.abs(flat_first - flat_second) <= int(tolerance), axis=-1)
	return float(close.mean())
