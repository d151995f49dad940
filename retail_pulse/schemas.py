"""
schemas.py – Pydantic request models for the write operations.

Derived fields (carbon_kg, green_score, esg_score, risk_level,
recommendations, accuracy) have no field here: pydantic ignores unknown
keys, so a caller can never set them.  Update models leave every field
optional; only fields explicitly sent are applied (``exclude_unset``).
"""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

TransportMode = Literal["diesel", "electric", "hybrid", "rail", "ship", "air"]
VehicleType = Literal["truck", "van", "car", "train", "ship", "plane"]
ShipmentStatus = Literal["pending", "in-transit", "delivered", "cancelled"]
PackagingType = Literal["plastic", "recyclable", "compostable", "biodegradable", "minimal"]
ProductCategory = Literal[
    "Fresh Produce", "Dairy", "Meat", "Bakery", "Pantry",
    "Beverages", "Frozen", "Household", "Electronics", "Clothing",
]
ProductUnit = Literal["kg", "lb", "piece", "liter", "gallon", "box", "bottle"]
Certification = Literal["Organic", "Fair Trade", "Non-GMO", "Vegan", "Gluten-Free", "Kosher", "Halal"]
CertificationLevel = Literal["None", "Basic", "FairTrade", "Organic", "B Corp", "Carbon Neutral"]
SupplierStatus = Literal["pending", "approved", "suspended", "rejected"]
AuditDocType = Literal["certification", "audit", "report"]


# ─────────────────────────────────────────────────────────────
# Shared / sub-models
# ─────────────────────────────────────────────────────────────

class Location(BaseModel):
    name: Optional[str] = None
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
    address: Optional[str] = None


class ProductMetrics(BaseModel):
    """Caller-supplied product footprints; green_score is derived."""

    carbon_footprint: float = Field(0, ge=0, description="kg CO₂ per unit")
    water_footprint: float = Field(0, ge=0, description="Liters per unit")


class Inventory(BaseModel):
    current_stock: float = Field(0, ge=0)
    reorder_point: float = Field(10, ge=0)
    max_stock: float = Field(1000, ge=0)


class SupplierMetrics(BaseModel):
    carbon_footprint: float = Field(0, ge=0, description="Tonnes CO₂ per year")
    water_usage: float = Field(0, ge=0)
    waste_reduction: float = Field(0, ge=0, le=100, description="Percent")
    renewable_energy: float = Field(0, ge=0, le=100, description="Percent")


class ContactInfo(BaseModel):
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None


class AuditDocIn(BaseModel):
    """Metadata of an audit document; the file itself is stored elsewhere."""

    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    type: AuditDocType = "certification"


# ─────────────────────────────────────────────────────────────
# Shipment
# ─────────────────────────────────────────────────────────────

class ShipmentCreate(BaseModel):
    supplier_id: int
    product_id: int
    quantity: float = Field(..., ge=0)
    distance_km: float = Field(..., ge=0)
    transport_mode: TransportMode
    vehicle_type: Optional[VehicleType] = None
    packaging_weight: float = Field(0, ge=0, description="kg")
    origin: Optional[Location] = None
    destination: Optional[Location] = None
    status: ShipmentStatus = "pending"
    estimated_delivery: Optional[str] = Field(None, description="ISO 8601 datetime")
    notes: Optional[str] = None


class ShipmentUpdate(BaseModel):
    quantity: Optional[float] = Field(None, ge=0)
    distance_km: Optional[float] = Field(None, ge=0)
    transport_mode: Optional[TransportMode] = None
    vehicle_type: Optional[VehicleType] = None
    packaging_weight: Optional[float] = Field(None, ge=0)
    origin: Optional[Location] = None
    destination: Optional[Location] = None
    status: Optional[ShipmentStatus] = None
    estimated_delivery: Optional[str] = None
    actual_delivery: Optional[str] = None
    notes: Optional[str] = None


# ─────────────────────────────────────────────────────────────
# Product
# ─────────────────────────────────────────────────────────────

class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1)
    sku: str = Field(..., min_length=1)
    category: ProductCategory
    supplier_id: int
    description: Optional[str] = None
    base_spoilage_rate: float = Field(5, ge=0, le=100)
    shelf_life: int = Field(..., ge=1, description="Days")
    unit: ProductUnit = "piece"
    price: float = Field(..., ge=0)
    packaging_type: PackagingType = "recyclable"
    sustainability_metrics: ProductMetrics = Field(default_factory=ProductMetrics)
    certifications: list[Certification] = Field(default_factory=list)
    inventory: Inventory = Field(default_factory=Inventory)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    category: Optional[ProductCategory] = None
    description: Optional[str] = None
    base_spoilage_rate: Optional[float] = Field(None, ge=0, le=100)
    shelf_life: Optional[int] = Field(None, ge=1)
    unit: Optional[ProductUnit] = None
    price: Optional[float] = Field(None, ge=0)
    packaging_type: Optional[PackagingType] = None
    sustainability_metrics: Optional[ProductMetrics] = None
    certifications: Optional[list[Certification]] = None
    inventory: Optional[Inventory] = None
    is_active: Optional[bool] = None


# ─────────────────────────────────────────────────────────────
# Supplier
# ─────────────────────────────────────────────────────────────

class SupplierCreate(BaseModel):
    name: str = Field(..., min_length=1)
    certification_level: CertificationLevel = "None"
    location: Optional[Location] = None
    contact_info: Optional[ContactInfo] = None
    sustainability_metrics: SupplierMetrics = Field(default_factory=SupplierMetrics)
    status: SupplierStatus = "pending"


class SupplierUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    certification_level: Optional[CertificationLevel] = None
    location: Optional[Location] = None
    contact_info: Optional[ContactInfo] = None
    sustainability_metrics: Optional[SupplierMetrics] = None
    status: Optional[SupplierStatus] = None


class DocumentVerification(BaseModel):
    verified: bool


# ─────────────────────────────────────────────────────────────
# Waste alert
# ─────────────────────────────────────────────────────────────

class AlertCreate(BaseModel):
    product_id: int
    supplier_id: int
    predicted_waste_qty: float = Field(..., ge=0)
    current_stock: float = Field(..., ge=0)
    predicted_waste_percentage: float = Field(..., ge=0, le=100)
    predicted_date: str = Field(..., description="ISO 8601 date the waste is expected")
    confidence: float = Field(75, ge=0, le=100)
    notes: Optional[str] = None


class AlertUpdate(BaseModel):
    predicted_waste_qty: Optional[float] = Field(None, ge=0)
    current_stock: Optional[float] = Field(None, ge=0)
    predicted_waste_percentage: Optional[float] = Field(None, ge=0, le=100)
    predicted_date: Optional[str] = None
    confidence: Optional[float] = Field(None, ge=0, le=100)
    notes: Optional[str] = None


class ResolveAlert(BaseModel):
    actual_waste_qty: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None


class AlertNote(BaseModel):
    notes: Optional[str] = None


# ─────────────────────────────────────────────────────────────
# Eco orders
# ─────────────────────────────────────────────────────────────

class EcoPreferences(BaseModel):
    minimal_packaging: bool = False
    green_delivery: bool = False
    carbon_offset: bool = False
    local_sourcing: bool = False
    bulk_ordering: bool = False


class OrderItem(BaseModel):
    name: Optional[str] = None
    quantity: Optional[float] = Field(None, ge=0)
    price: Optional[float] = Field(None, ge=0)


class EcoOrderIn(BaseModel):
    order_id: Optional[str] = None
    customer_email: Optional[str] = None
    preferences: EcoPreferences
    items: list[OrderItem] = Field(default_factory=list)
    total_amount: float = Field(0, ge=0)


class RouteCarbonRequest(BaseModel):
    origin: Optional[Location] = None
    destination: Optional[Location] = None
    distance_km: float = Field(..., ge=0)
    transport_mode: TransportMode
    vehicle_type: Optional[VehicleType] = "truck"
    weight: float = Field(1000, ge=0, description="kg")
