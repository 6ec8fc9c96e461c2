"""
Linguistic knowledge tables for the matcher.

Every table lives in its own versioned JSON file under ``matcher_config/``:

    version-keywords.json     version keyword groups + special-version list
    filter-keywords.json      gift-box / demo / accessory keyword lists
    color-variants.json       color synonym groups, partitioned by family
    basic-color-map.json      coarse color families (keyword characters)
    model-normalizations.json model token rewrites ("watchgt" -> "watch gt")
    text-mappings.json        typo corrections and brand aliases
    product-types.json        phone / watch / tablet keywords and SKU weights

``ConfigStore.load()`` never raises. A missing or malformed table is replaced
by its empty default and a warning is logged, so the matcher degrades to
"no linguistic knowledge" instead of crashing. The returned store is frozen.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------
CONFIG_DIR_ENV = "PRODUCT_MATCHER_CONFIG_DIR"
DEFAULT_CONFIG_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "matcher_config")

TABLE_NAMES = (
    "version-keywords",
    "filter-keywords",
    "color-variants",
    "basic-color-map",
    "model-normalizations",
    "text-mappings",
    "product-types",
)


class ConfigError(ValueError):
    """A knowledge table is present but structurally invalid."""


# ---------------------------------------------------------------------------
# Table records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VersionEntry:
    name: str
    keywords: Tuple[str, ...]
    priority: int = 0


@dataclass(frozen=True)
class VersionGroup:
    """A set of versions. In an exclusive group at most one member may apply."""
    id: str
    exclusive: bool
    versions: Tuple[VersionEntry, ...]


@dataclass(frozen=True)
class ColorVariantGroup:
    family: str
    colors: Tuple[str, ...]


@dataclass(frozen=True)
class ColorFamily:
    family: str
    name: str
    keywords: Tuple[str, ...]


@dataclass(frozen=True)
class ProductType:
    id: str
    name: str
    keywords: Tuple[str, ...]
    spec_weights: Dict[str, float] = field(default_factory=dict, hash=False, compare=False)


@dataclass(frozen=True)
class ConfigStore:
    version_groups: Tuple[VersionGroup, ...] = ()
    special_versions: Tuple[str, ...] = ()
    gift_box_keywords: Tuple[str, ...] = ()
    gift_custom_keywords: Tuple[str, ...] = ()
    demo_keywords: Tuple[str, ...] = ()
    accessory_brand_prefixes: Tuple[str, ...] = ()
    accessory_keywords: Tuple[str, ...] = ()
    color_variants: Tuple[ColorVariantGroup, ...] = ()
    color_families: Tuple[ColorFamily, ...] = ()
    model_normalizations: Tuple[Tuple[str, str], ...] = ()
    typo_corrections: Tuple[Tuple[str, str], ...] = ()
    brand_aliases: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()
    product_types: Tuple[ProductType, ...] = ()
    table_versions: Tuple[Tuple[str, str], ...] = ()

    # -- construction -------------------------------------------------------

    @classmethod
    def defaults(cls) -> "ConfigStore":
        """Empty, no-op tables."""
        return cls()

    @classmethod
    def load(cls, config_dir: Optional[str] = None) -> "ConfigStore":
        """
        Load every table from ``config_dir`` (or ``$PRODUCT_MATCHER_CONFIG_DIR``,
        or the bundled ``matcher_config`` directory).

        Tables are loaded independently: one broken file only empties that table.
        """
        config_dir = config_dir or os.environ.get(CONFIG_DIR_ENV) or DEFAULT_CONFIG_DIR
        raw = {}
        for name in TABLE_NAMES:
            path = os.path.join(config_dir, f"{name}.json")
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if not isinstance(data, dict):
                    raise ConfigError(f"{name}: top level must be an object")
                # Validate each table on its own so a bad one cannot poison the rest
                cls.from_dict({name: data})
            except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
                logger.warning("Config table '%s' unavailable (%s); using empty defaults", name, exc)
                continue
            raw[name] = data
        store = cls.from_dict(raw)
        logger.info("Loaded matcher config from %s: %s", config_dir, dict(store.table_versions))
        return store

    @classmethod
    def from_dict(cls, tables: Dict[str, Dict]) -> "ConfigStore":
        """
        Build a store from already-parsed tables keyed by table name.

        Raises ConfigError / KeyError / TypeError on malformed content.
        """
        kwargs = {}
        versions = []

        vk = tables.get("version-keywords")
        if vk is not None:
            groups = []
            for g in vk.get("groups", []):
                entries = tuple(
                    VersionEntry(
                        name=str(v["name"]),
                        keywords=_str_tuple(v.get("keywords") or [v["name"]]),
                        priority=int(v.get("priority", 0)),
                    )
                    for v in g["versions"]
                )
                groups.append(VersionGroup(id=str(g["id"]), exclusive=bool(g.get("exclusive", False)), versions=entries))
            kwargs["version_groups"] = tuple(groups)
            kwargs["special_versions"] = _str_tuple(vk.get("specialVersions", []))

        fk = tables.get("filter-keywords")
        if fk is not None:
            kwargs["gift_box_keywords"] = _str_tuple(fk.get("giftBox", []))
            kwargs["gift_custom_keywords"] = _str_tuple(fk.get("giftCustom", []))
            kwargs["demo_keywords"] = _str_tuple(fk.get("demo", []))
            kwargs["accessory_brand_prefixes"] = _str_tuple(fk.get("accessoryBrands", []))
            kwargs["accessory_keywords"] = _str_tuple(fk.get("accessoryKeywords", []))

        cv = tables.get("color-variants")
        if cv is not None:
            kwargs["color_variants"] = tuple(
                ColorVariantGroup(family=str(v.get("family", "")), colors=_str_tuple(v["colors"]))
                for v in cv.get("variants", [])
            )

        bc = tables.get("basic-color-map")
        if bc is not None:
            kwargs["color_families"] = tuple(
                ColorFamily(family=str(f["family"]), name=str(f.get("name", f["family"])),
                            keywords=_str_tuple(f["keywords"]))
                for f in bc.get("colorFamilies", [])
            )

        mn = tables.get("model-normalizations")
        if mn is not None:
            kwargs["model_normalizations"] = _pairs(mn.get("normalizations", {}))

        tm = tables.get("text-mappings")
        if tm is not None:
            kwargs["typo_corrections"] = _safe_rewrites(_pairs(tm.get("typoCorrections", {})))
            kwargs["brand_aliases"] = tuple(
                (str(k), _str_tuple(v)) for k, v in tm.get("brandAliases", {}).items()
            )

        pt = tables.get("product-types")
        if pt is not None:
            kwargs["product_types"] = tuple(
                ProductType(
                    id=str(t["id"]), name=str(t.get("name", t["id"])),
                    keywords=_str_tuple(t["keywords"]),
                    spec_weights={str(k): float(w) for k, w in t.get("specWeights", {}).items()},
                )
                for t in pt.get("types", [])
            )

        for name in TABLE_NAMES:
            if name in tables:
                versions.append((name, str(tables[name].get("version", "unversioned"))))
        kwargs["table_versions"] = tuple(versions)
        return cls(**kwargs)

    # -- lookups ------------------------------------------------------------

    def version_group(self, group_id: str) -> Optional[VersionGroup]:
        for g in self.version_groups:
            if g.id == group_id:
                return g
        return None

    def product_type(self, type_id: str) -> Optional[ProductType]:
        for t in self.product_types:
            if t.id == type_id:
                return t
        return None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _str_tuple(values) -> Tuple[str, ...]:
    if isinstance(values, str) or not isinstance(values, (list, tuple)):
        raise ConfigError(f"expected a list of strings, got {type(values).__name__}")
    return tuple(str(v) for v in values if str(v).strip())


def _pairs(mapping) -> Tuple[Tuple[str, str], ...]:
    if not isinstance(mapping, dict):
        raise ConfigError(f"expected an object, got {type(mapping).__name__}")
    return tuple((str(k), str(v)) for k, v in mapping.items() if str(k))


def _safe_rewrites(pairs: Tuple[Tuple[str, str], ...]) -> Tuple[Tuple[str, str], ...]:
    """Drop rewrites whose target re-introduces a source (would never converge)."""
    sources = [src for src, _ in pairs]
    kept = []
    for src, dst in pairs:
        if any(s in dst for s in sources):
            logger.warning("Ignoring non-convergent text rewrite %r -> %r", src, dst)
            continue
        kept.append((src, dst))
    return tuple(kept)
