"""
Centralized configuration constants for the local matte pipeline.

Ground rules:
- Deterministic, single image per call
- Every tuned number lives here; stages import them by name
"""

# Caller-facing defaults.
DEFAULT_FEATHER_AMOUNT = 2
DEFAULT_MAX_PROCESSING_SIDE = 1200

# Background colour model: border sampling.
BG_BORDER_FRACTION = 0.025
BG_BORDER_MIN = 6
BG_BORDER_MAX = 18
BG_SAMPLES_PER_SIDE = 320
BG_MIN_ALPHA = 16
BG_BIN_SHIFT = 4  # 4-bit quantisation -> 16 bins per channel

# Background colour model: refinement + tolerances.
BG_REFINE_RADIUS = 42.0
BG_REFINE_MIN_SAMPLES = 50
BG_TOLERANCE_PERCENTILE = 0.80
BG_TOLERANCE_SCALE = 1.25
BG_TOLERANCE_MIN = 24.0
BG_TOLERANCE_MAX = 110.0
BG_EXPANSION_PERCENTILE = 0.95
BG_EXPANSION_SCALE = 1.35
BG_EXPANSION_MIN = 32.0
BG_EXPANSION_MAX = 135.0

# Used when the border has no opaque pixel at all.
FALLBACK_BG_COLOR = (245.0, 245.0, 245.0)
FALLBACK_TOLERANCE = 30.0
FALLBACK_EXPANSION_TOLERANCE = 42.0

LUMA_WEIGHTS = (0.299, 0.587, 0.114)

# Border seeds.
SEED_BORDER_FRACTION = 0.01
SEED_MAX_GRADIENT = 85.0
SEED_FALLBACK_GRADIENT_WEIGHT = 0.2
SEED_FALLBACK_MIN_COUNT = 40
SEED_FALLBACK_FRACTION = 0.3

# Region growing admission rule.
GROW_GRADIENT_BONUS_SCALE = 0.12
GROW_GRADIENT_BONUS_MAX = 28.0
GROW_MAX_PARENT_DISTANCE = 74.0
GROW_MAX_GRADIENT = 125.0
GROW_EDGE_TOLERANCE_SCALE = 0.95

# Connected components.
CENTER_WINDOW = (0.25, 0.75)
CENTER_SCORE_BONUS = 0.2
COMPONENT_MIN_AREA = 120
COMPONENT_MIN_AREA_FRACTION = 0.0018
COMPONENT_SECONDARY_FRACTION = 0.12

MORPH_RADIUS = 1

# Smoothstep remap of the blurred mask: v=0.16 -> ~0, v=0.88 -> ~1.
SOFTEN_LOW = 0.16
SOFTEN_RANGE = 0.72

# Auto-crop.
ALPHA_THRESHOLD = 0.08
CROP_PADDING = 10
