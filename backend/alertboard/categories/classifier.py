"""Business tier and display category classification for components."""

import threading
import time
from pathlib import Path

import structlog
import yaml

logger = structlog.get_logger()

TIER_PREMIUM = "premium"
TIER_DEDICATED = "dedicated"
TIER_ESSENTIAL = "essential"

PREMIUM_MARKERS = ("nextgen",)
ESSENTIAL_MARKERS = ("devtier", "serverless")

# Virtual component covering every essential-tier alert regardless of component.
SERVERLESS_COMPONENT = "Serverless"
SERVERLESS_CATEGORY = "Serverless"

# Pseudo-component for alerts with no stability governance outside the premium tier.
LEGACY_COMPONENT = "old-rules"
LEGACY_CATEGORY = "Resilience"

OTHER_CATEGORY = "Other"


def classify_tier(biz_type: str | None, component: str | None = None) -> str:
    """Derive the business tier from the free-form biz type string.

    The Serverless component is always essential, whatever its biz type.
    """
    if component == SERVERLESS_COMPONENT:
        return TIER_ESSENTIAL
    marker = (biz_type or "").lower()
    if any(m in marker for m in PREMIUM_MARKERS):
        return TIER_PREMIUM
    if any(m in marker for m in ESSENTIAL_MARKERS):
        return TIER_ESSENTIAL
    return TIER_DEDICATED


def is_legacy_bucket(is_alert: bool, stability_governance: str | None, biz_type: str | None) -> bool:
    """In-memory twin of ``analytics.filters.legacy_bucket``."""
    return (
        bool(is_alert)
        and not (stability_governance or "")
        and classify_tier(biz_type) != TIER_PREMIUM
    )


class _Snapshot:
    __slots__ = ("mapping", "order")

    def __init__(self, mapping: dict[str, str], order: tuple[str, ...]):
        self.mapping = mapping
        self.order = order


class CategoryMap:
    """Hot-reloadable component -> category mapping read from YAML.

    Expected layout::

        categories:
          Storage:
            - tikv
            - pd
          Resilience:
            - br

    Category order follows the file. Reloads happen at most once per
    ``reload_interval`` seconds; readers always see a complete snapshot.
    A failed reload keeps the previous snapshot.
    """

    def __init__(self, path: str | Path, reload_interval: float = 60.0, clock=time.monotonic):
        self.path = Path(path)
        self.reload_interval = reload_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot = _Snapshot({}, ())
        self._last_attempt: float | None = None

    @property
    def loaded(self) -> bool:
        self._maybe_reload()
        return bool(self._snapshot.mapping)

    def _maybe_reload(self) -> None:
        now = self._clock()
        if self._last_attempt is not None and now - self._last_attempt < self.reload_interval:
            return
        with self._lock:
            if self._last_attempt is not None and now - self._last_attempt < self.reload_interval:
                return
            self._last_attempt = now
            snapshot = self._read()
            if snapshot is not None:
                self._snapshot = snapshot

    def _read(self) -> _Snapshot | None:
        try:
            raw = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except FileNotFoundError:
            logger.warning("category_config_missing", path=str(self.path))
            return None
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("category_config_unreadable", path=str(self.path), error=str(exc))
            return None

        categories = raw.get("categories") if isinstance(raw, dict) else None
        if not isinstance(categories, dict):
            logger.warning("category_config_invalid", path=str(self.path))
            return None

        mapping: dict[str, str] = {}
        order: list[str] = []
        for category, components in categories.items():
            category = str(category)
            order.append(category)
            for component in components or []:
                mapping[str(component)] = category

        logger.info("category_config_loaded", categories=order, components=len(mapping))
        return _Snapshot(mapping, tuple(order))

    def categories(self) -> list[str]:
        self._maybe_reload()
        return list(self._snapshot.order)

    def category(self, component: str) -> str:
        if component == SERVERLESS_COMPONENT:
            return SERVERLESS_CATEGORY
        if component == LEGACY_COMPONENT:
            return LEGACY_CATEGORY
        self._maybe_reload()
        return self._snapshot.mapping.get(component, OTHER_CATEGORY)

    def sort_key(self, category: str) -> int:
        """Position of *category* in declaration order; unknown ones sort last."""
        order = self._snapshot.order
        return order.index(category) if category in order else len(order)
