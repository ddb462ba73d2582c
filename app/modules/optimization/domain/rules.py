"""
Optimization Rule Catalog

Rules are data: a detector predicate, a description generator and a savings
estimator plus static metadata, keyed by canonical resource type. A resource
is evaluated against every rule for its type and every match yields one
suggestion draft.

Tags read by the built-in rules:
- utilization: average CPU percent (compute)
- lastAccess: ISO date of last access (compute, storage)
- schedule: a non-empty value means the instance is already scheduled (compute)
- connections: average open connections (database)
- storageClass: current storage tier (storage)
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

import structlog

from app.schemas.optimization import ResourceSnapshot

logger = structlog.get_logger()


class SuggestedAction(str, Enum):
    DOWNSIZE = "Downsize"
    TERMINATE = "Terminate"
    SCHEDULE = "Schedule"
    STORAGE_TRANSITION = "StorageTransition"


class ImplementationDifficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


COMPUTE = "compute"
DATABASE = "database"
STORAGE = "storage"

# Provider type names -> canonical rule type (lookup is case-insensitive)
RESOURCE_TYPE_ALIASES: Dict[str, str] = {
    "ec2": COMPUTE,
    "compute engine": COMPUTE,
    "virtual machines": COMPUTE,
    "virtual machine": COMPUTE,
    "rds": DATABASE,
    "cloud sql": DATABASE,
    "azure sql": DATABASE,
    "s3": STORAGE,
    "cloud storage": STORAGE,
    "blob storage": STORAGE,
}


def canonical_type(resource_type: Optional[str]) -> Optional[str]:
    if not resource_type:
        return None
    key = resource_type.strip().lower()
    if key in (COMPUTE, DATABASE, STORAGE):
        return key
    return RESOURCE_TYPE_ALIASES.get(key)


@dataclass(frozen=True)
class OptimizationRule:
    name: str
    resource_type: str
    title: str
    detector: Callable[[ResourceSnapshot, datetime], bool]
    describe: Callable[[ResourceSnapshot], str]
    estimate_savings: Callable[[ResourceSnapshot], Decimal]
    suggested_action: SuggestedAction
    confidence: float
    difficulty: ImplementationDifficulty


@dataclass(frozen=True)
class SuggestionDraft:
    rule: str
    resource_id: Optional[str]
    resource_name: str
    resource_type: str
    title: str
    description: str
    suggested_action: SuggestedAction
    potential_savings: Decimal
    confidence: float
    implementation_difficulty: ImplementationDifficulty


# --- Tag readers: anything unreadable means "does not match" ---

def tag_number(resource: ResourceSnapshot, key: str) -> Optional[float]:
    raw = resource.tags.get(key)
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if value != value:  # NaN
        return None
    return value


def days_since(resource: ResourceSnapshot, key: str, now: datetime) -> Optional[float]:
    raw = resource.tags.get(key)
    if raw is None:
        return None
    if isinstance(raw, datetime):
        seen = raw
    elif isinstance(raw, date):
        seen = datetime(raw.year, raw.month, raw.day)
    else:
        try:
            seen = datetime.fromisoformat(str(raw).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if seen.tzinfo is None:
        seen = seen.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now - seen).total_seconds() / 86400


def _has_status(resource: ResourceSnapshot, status: str) -> bool:
    return (resource.status or "").strip().lower() == status


def _share_of_cost(fraction: str) -> Callable[[ResourceSnapshot], Decimal]:
    def estimate(resource: ResourceSnapshot) -> Decimal:
        return Decimal(resource.cost) * Decimal(fraction)
    return estimate


def _underutilized(resource: ResourceSnapshot, _now: datetime) -> bool:
    utilization = tag_number(resource, "utilization")
    return _has_status(resource, "running") and utilization is not None and utilization < 20


def _idle_compute(resource: ResourceSnapshot, now: datetime) -> bool:
    idle_days = days_since(resource, "lastAccess", now)
    return _has_status(resource, "running") and idle_days is not None and idle_days > 30


def _always_on(resource: ResourceSnapshot, _now: datetime) -> bool:
    return _has_status(resource, "running") and not resource.tags.get("schedule")


def _few_connections(resource: ResourceSnapshot, _now: datetime) -> bool:
    connections = tag_number(resource, "connections")
    return _has_status(resource, "available") and connections is not None and connections < 5


def _cold_storage(resource: ResourceSnapshot, now: datetime) -> bool:
    storage_class = str(resource.tags.get("storageClass", "")).strip().lower()
    idle_days = days_since(resource, "lastAccess", now)
    return storage_class == "standard" and idle_days is not None and idle_days > 90


BUILTIN_RULES = (
    OptimizationRule(
        name="compute_underutilized",
        resource_type=COMPUTE,
        title="Right-size underutilized instance",
        detector=_underutilized,
        describe=lambda r: (
            f"Instance {r.name} has average CPU utilization below 20%. "
            "Consider downsizing to a smaller instance type."
        ),
        estimate_savings=_share_of_cost("0.5"),
        suggested_action=SuggestedAction.DOWNSIZE,
        confidence=0.8,
        difficulty=ImplementationDifficulty.MEDIUM,
    ),
    OptimizationRule(
        name="compute_idle",
        resource_type=COMPUTE,
        title="Terminate idle instance",
        detector=_idle_compute,
        describe=lambda r: (
            f"Instance {r.name} has not been accessed in over 30 days. "
            "Consider terminating if not needed."
        ),
        estimate_savings=_share_of_cost("1"),
        suggested_action=SuggestedAction.TERMINATE,
        confidence=0.9,
        difficulty=ImplementationDifficulty.EASY,
    ),
    OptimizationRule(
        name="compute_always_on",
        resource_type=COMPUTE,
        title="Implement instance scheduling",
        detector=_always_on,
        describe=lambda r: (
            f"Instance {r.name} is running 24/7. "
            "Implement scheduling to stop during non-business hours."
        ),
        estimate_savings=_share_of_cost("0.3"),
        suggested_action=SuggestedAction.SCHEDULE,
        confidence=0.75,
        difficulty=ImplementationDifficulty.EASY,
    ),
    OptimizationRule(
        name="database_low_connections",
        resource_type=DATABASE,
        title="Right-size underutilized database",
        detector=_few_connections,
        describe=lambda r: (
            f"Database {r.name} has very few connections. "
            "Consider downsizing to a smaller instance class."
        ),
        estimate_savings=_share_of_cost("0.4"),
        suggested_action=SuggestedAction.DOWNSIZE,
        confidence=0.7,
        difficulty=ImplementationDifficulty.MEDIUM,
    ),
    OptimizationRule(
        name="storage_cold_data",
        resource_type=STORAGE,
        title="Transition infrequently accessed objects to a lower cost storage class",
        detector=_cold_storage,
        describe=lambda r: (
            f"Bucket {r.name} contains objects not accessed in over 90 days. "
            "Consider transitioning to an infrequent-access or archive tier."
        ),
        estimate_savings=_share_of_cost("0.7"),
        suggested_action=SuggestedAction.STORAGE_TRANSITION,
        confidence=0.85,
        difficulty=ImplementationDifficulty.EASY,
    ),
)

RULE_CATALOG: Dict[str, List[OptimizationRule]] = {}


def register_rule(rule: OptimizationRule) -> OptimizationRule:
    """Adds a rule to the catalog under its canonical resource type."""
    key = canonical_type(rule.resource_type) or rule.resource_type.strip().lower()
    RULE_CATALOG.setdefault(key, []).append(rule)
    return rule


for _rule in BUILTIN_RULES:
    register_rule(_rule)


def evaluate_resource(resource: ResourceSnapshot, now: Optional[datetime] = None) -> List[SuggestionDraft]:
    """One draft per matching rule; resources of unknown type yield none."""
    now = now or datetime.now(timezone.utc)
    rule_type = canonical_type(resource.type)
    drafts = []
    for rule in RULE_CATALOG.get(rule_type, []) if rule_type else []:
        if not rule.detector(resource, now):
            continue
        savings = rule.estimate_savings(resource)
        drafts.append(SuggestionDraft(
            rule=rule.name,
            resource_id=resource.id,
            resource_name=resource.name,
            resource_type=resource.type,
            title=rule.title,
            description=rule.describe(resource),
            suggested_action=rule.suggested_action,
            potential_savings=max(savings, Decimal("0")),
            confidence=rule.confidence,
            implementation_difficulty=rule.difficulty,
        ))
    return drafts


def evaluate_resources(resources: Iterable[ResourceSnapshot], now: Optional[datetime] = None) -> List[SuggestionDraft]:
    """Flattened drafts for all resources, largest potential savings first."""
    now = now or datetime.now(timezone.utc)
    drafts = [draft for resource in resources for draft in evaluate_resource(resource, now)]
    return sorted(drafts, key=lambda d: d.potential_savings, reverse=True)


def total_potential_savings(drafts: Iterable[SuggestionDraft]) -> Decimal:
    return sum((d.potential_savings for d in drafts), Decimal("0"))
