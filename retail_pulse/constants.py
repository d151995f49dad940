"""
constants.py – Defaults, lifecycle states and scoring tables shared across the package.

Entity enumerations (transport modes, packaging types, …) live as Literal
types in retail_pulse/schemas.py.
"""
from types import MappingProxyType

# ─────────────────────────────────────────────────────────────
# Entity defaults and alert lifecycle
# ─────────────────────────────────────────────────────────────
DEFAULT_SPOILAGE_RATE = 5.0
DEFAULT_CONFIDENCE = 75.0

ALERT_ACTIVE = "active"
ALERT_ACKNOWLEDGED = "acknowledged"
ALERT_RESOLVED = "resolved"
ALERT_DISMISSED = "dismissed"

# status → statuses it may move to
ALERT_TRANSITIONS = MappingProxyType({
    ALERT_ACTIVE: frozenset({ALERT_ACKNOWLEDGED, ALERT_RESOLVED, ALERT_DISMISSED}),
    ALERT_ACKNOWLEDGED: frozenset({ALERT_RESOLVED, ALERT_DISMISSED}),
    ALERT_RESOLVED: frozenset(),
    ALERT_DISMISSED: frozenset(),
})

ECO_PREFERENCES = (
    "minimal_packaging", "green_delivery", "carbon_offset", "local_sourcing", "bulk_ordering",
)

# ─────────────────────────────────────────────────────────────
# User roles (carried in the bearer token)
# ─────────────────────────────────────────────────────────────
ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_SUPPLIER = "supplier"
ROLE_CONSUMER = "consumer"
ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_SUPPLIER, ROLE_CONSUMER)

# ─────────────────────────────────────────────────────────────
# Scoring tables
# ─────────────────────────────────────────────────────────────
PACKAGING_SCORES = MappingProxyType({
    "minimal": 25,
    "compostable": 20,
    "biodegradable": 15,
    "recyclable": 10,
    "plastic": -10,
})

CERTIFICATION_SCORES = MappingProxyType({
    "None": 0,
    "Basic": 10,
    "FairTrade": 25,
    "Organic": 30,
    "B Corp": 40,
    "Carbon Neutral": 35,
})

GREEN_SCORE_BASE = 50
CERTIFICATION_BONUS = 5
VERIFIED_DOC_BONUS = 5
VERIFIED_DOC_BONUS_CAP = 20

# Aggregate sustainability score weights
SCORE_WEIGHTS = MappingProxyType({
    "carbon": 0.30,
    "supplier": 0.25,
    "product": 0.25,
    "waste": 0.20,
})
IMPROVEMENT_THRESHOLD = 60
IMPACT_ORDER = MappingProxyType({"high": 3, "medium": 2, "low": 1})

# ─────────────────────────────────────────────────────────────
# Analytics windows
# ─────────────────────────────────────────────────────────────
PERIOD_DAYS = MappingProxyType({"7d": 7, "30d": 30, "90d": 90})
DEFAULT_PERIOD = "30d"
DEMAND_LOOKBACK_DAYS = 30
