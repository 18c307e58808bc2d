"""Department catalogue for complaint routing.

Each ``DepartmentConfig`` carries the visual-evidence keywords used by the
department detector, the per-department score multiplier, and the
public-safety boost the priority assigner applies to complaints filed
against it.  Catalogue order is significant: ties in department scoring
are resolved in favour of the entry that appears first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

__all__ = [
    "DEFAULT_DEPARTMENT",
    "DEPARTMENTS",
    "DepartmentConfig",
    "KNOWN_AREAS",
    "get_department",
]


@dataclass(frozen=True, slots=True)
class DepartmentConfig:
    """Immutable descriptor for one department that can receive complaints."""

    name: str
    """Display name, identical to the ``Department`` enum value."""

    keywords: tuple[str, ...]
    """Terms matched against labels, objects, web entities and on-image text."""

    weight: float
    """Multiplier applied to every keyword hit for this department."""

    critical_boost: float = 0.0
    """Added to the Critical score by the priority assigner (High gets half)."""


DEFAULT_DEPARTMENT: Final[str] = "General"


# ---------------------------------------------------------------------------
# Department registry
# ---------------------------------------------------------------------------

DEPARTMENTS: Final[dict[str, DepartmentConfig]] = {
    "Water Resources": DepartmentConfig(
        name="Water Resources",
        keywords=(
            "water", "pipe", "pipeline", "flood", "flooding", "drain", "drainage",
            "sewage", "sewer", "leak", "leaking", "plumbing", "tap", "faucet",
            "water supply", "borewell", "well", "tank", "overhead tank", "pump",
            "waterlogging", "stagnant water", "canal", "river", "pond", "reservoir",
            "water contamination", "dirty water", "water body", "puddle", "swimming pool",
            "moisture", "wet", "liquid", "fluid", "sprinkler", "hydrant", "valve",
            "water pipe", "water tank", "water damage", "water overflow",
        ),
        weight=1.0,
        critical_boost=1.0,
    ),
    "Electricity": DepartmentConfig(
        name="Electricity",
        keywords=(
            "electric", "electricity", "wire", "wiring", "cable", "power line",
            "transformer", "pole", "power pole", "utility pole", "streetlight",
            "street light", "lamp", "lamp post", "bulb", "light", "lighting",
            "electric pole", "power outage", "blackout", "short circuit",
            "electrical", "voltage", "current", "generator", "inverter",
            "circuit breaker", "meter", "electric meter", "fuse", "switch",
            "overhead line", "high tension", "conductor", "insulator",
            "power grid", "substation", "energy", "neon", "fluorescent",
            "led", "electrical equipment", "power supply", "electric line",
        ),
        weight=1.0,
        critical_boost=1.0,
    ),
    "Roads & Highways": DepartmentConfig(
        name="Roads & Highways",
        keywords=(
            "road", "highway", "pothole", "crack", "asphalt", "pavement",
            "footpath", "sidewalk", "bridge", "flyover", "overpass", "underpass",
            "speed breaker", "speed bump", "divider", "median", "curb",
            "road damage", "road construction", "tar", "concrete", "gravel",
            "lane", "intersection", "junction", "roundabout", "road sign",
            "traffic sign", "barricade", "guardrail", "railing", "manhole",
            "road surface", "street", "avenue", "boulevard", "path", "trail",
            "cobblestone", "bitumen", "roadwork", "paving", "road marking",
            "zebra crossing", "crosswalk", "pedestrian", "roadway", "infrastructure",
        ),
        weight=1.0,
        critical_boost=0.5,
    ),
    "Sanitation": DepartmentConfig(
        name="Sanitation",
        keywords=(
            "garbage", "trash", "waste", "dump", "litter", "debris", "rubbish",
            "dustbin", "bin", "dumpster", "compost", "recycling", "junk",
            "pollution", "dirty", "filth", "mess", "unhygienic", "unsanitary",
            "toilet", "restroom", "latrine", "sewage", "sanitation",
            "cleaning", "sweeping", "disposal", "waste management",
            "plastic", "plastic waste", "polythene", "bottle", "cans",
            "food waste", "organic waste", "landfill", "decomposition",
            "stench", "smell", "odor", "foul smell", "rot", "rotten",
            "contamination", "hazardous waste", "biomedical waste",
        ),
        weight=1.0,
    ),
    "Public Health": DepartmentConfig(
        name="Public Health",
        keywords=(
            "hospital", "clinic", "medical", "health", "disease", "infection",
            "mosquito", "pest", "insect", "rat", "rodent", "cockroach",
            "dengue", "malaria", "epidemic", "pandemic", "vaccination",
            "medicine", "pharmacy", "doctor", "nurse", "patient",
            "ambulance", "emergency", "first aid", "health hazard",
            "contamination", "polluted", "toxic", "chemical", "smoke",
            "air pollution", "respiratory", "safety", "biohazard",
            "stagnant", "breeding ground", "larvae", "fly", "flies",
            "public health", "hygiene", "disinfection", "sanitizer",
        ),
        weight=1.0,
        critical_boost=1.0,
    ),
    "Education": DepartmentConfig(
        name="Education",
        keywords=(
            "school", "college", "university", "classroom", "education",
            "student", "teacher", "blackboard", "whiteboard", "desk",
            "chair", "bench", "library", "book", "notebook", "stationery",
            "playground", "campus", "laboratory", "computer lab",
            "hostel", "canteen", "auditorium", "sports", "academic",
            "tuition", "exam", "scholarship", "learning",
        ),
        weight=0.8,
    ),
    "Transport": DepartmentConfig(
        name="Transport",
        keywords=(
            "bus", "bus stop", "bus stand", "bus station", "bus shelter",
            "traffic", "traffic light", "traffic signal", "traffic jam",
            "vehicle", "car", "truck", "auto", "rickshaw", "train",
            "railway", "metro", "station", "platform", "parking",
            "accident", "collision", "transport", "transportation",
            "commute", "transit", "route", "highway", "signal",
            "pedestrian crossing", "overloaded", "public transport",
        ),
        weight=0.9,
    ),
    "Revenue": DepartmentConfig(
        name="Revenue",
        keywords=(
            "land", "property", "boundary", "survey", "deed", "title",
            "encroachment", "illegal construction", "demolition",
            "tax", "revenue", "registration", "document", "certificate",
            "patta", "chitta", "adangal", "land record", "measurement",
        ),
        weight=0.7,
    ),
    "Agriculture": DepartmentConfig(
        name="Agriculture",
        keywords=(
            "farm", "crop", "field", "agriculture", "farming", "harvest",
            "irrigation", "fertilizer", "pesticide", "soil", "seed",
            "tractor", "plowing", "cattle", "livestock", "poultry",
            "paddy", "rice", "wheat", "vegetable", "fruit", "garden",
            "horticulture", "plantation", "orchard", "greenhouse",
            "drought", "pest attack", "crop damage", "agricultural land",
        ),
        weight=0.8,
    ),
}


# Districts recognised when deriving an ``area`` from a geocoded address.
KNOWN_AREAS: Final[tuple[str, ...]] = (
    "Chennai", "Coimbatore", "Madurai", "Tiruchirappalli", "Salem",
    "Tirunelveli", "Erode", "Vellore", "Thoothukudi", "Dindigul",
    "Thanjavur", "Ranipet", "Sivaganga", "Karur", "Namakkal",
    "Tiruppur", "Cuddalore", "Kanchipuram", "Tiruvannamalai", "Villupuram",
    "Nagapattinam", "Ramanathapuram", "Virudhunagar", "Krishnagiri", "Dharmapuri",
    "Perambalur", "Ariyalur", "Nilgiris", "Pudukkottai", "Theni",
    "Kanyakumari", "Kallakurichi", "Chengalpattu", "Tiruvallur", "Tenkasi",
    "Tirupattur", "Mayiladuthurai",
)


def get_department(name: str) -> DepartmentConfig | None:
    """Return the catalogue entry for *name* (case-insensitive), or ``None``."""
    lowered = name.strip().lower()
    for config in DEPARTMENTS.values():
        if config.name.lower() == lowered:
            return config
    return None
