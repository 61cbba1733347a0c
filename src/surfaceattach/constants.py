"""Shared constants and defaults for surfaceattach."""

# Numeric tolerances
EPSILON = 1e-6             # Degenerate normal/tangent magnitude
AREA_EPSILON = 1e-12       # Total cluster area below this falls back to uniform weights

# Blendshape weight range (host convention)
WEIGHT_MIN = 0.0
WEIGHT_MAX = 100.0

# Fallback axes for tangent construction
WORLD_UP = (0.0, 1.0, 0.0)
WORLD_FORWARD = (0.0, 0.0, 1.0)

# Attachment defaults
DEFAULT_CLUSTER_TRIANGLE_COUNT = 4
DEFAULT_SEARCH_RADIUS = 0.1          # metres, 0 = unlimited
DEFAULT_SAMPLES_PER_BLENDSHAPE = 5
DEFAULT_NORMAL_OFFSET = 0.001        # metres
DEFAULT_SMOOTHING_FACTOR = 0.3
DEFAULT_SMART_DETECTION_THRESHOLD = 0.001

# Cage/RBF settings (carried, see CageRBFPolicy)
DEFAULT_RBF_DRIVER_POINT_COUNT = 6
DEFAULT_RBF_RADIUS_MULTIPLIER = 1.5

# Curve property names, in synthesis order
POSITION_PROPERTIES = ("position.x", "position.y", "position.z")
ROTATION_PROPERTIES = ("rotation.x", "rotation.y", "rotation.z", "rotation.w")
CURVE_PROPERTIES = POSITION_PROPERTIES + ROTATION_PROPERTIES
