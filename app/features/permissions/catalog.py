"""
System object catalog.

Static registry of the protected objects, the access levels each one supports
and, per level, the scopes that may be granted. Everything here is immutable;
services receive a catalog through their constructor instead of reading a
module-level singleton, which keeps tests free to build a smaller catalog.
"""
import enum
from dataclasses import dataclass


class PermissionLevel(str, enum.Enum):
    """Kind of operation a permission gates."""
    READ_ONLY = "read-only"
    READ_EDIT = "read-edit"
    FULL_ACCESS = "full-access"


class PermissionScope(str, enum.Enum):
    """Breadth of resources a grant covers."""
    OWN = "own"
    TEAM = "team"
    ALL = "all"
    UNASSIGNED = "unassigned"


# Breadth ordering: own < team < all. UNASSIGNED is not on this axis.
SCOPE_BREADTH: dict[PermissionScope, int] = {
    PermissionScope.OWN: 1,
    PermissionScope.TEAM: 2,
    PermissionScope.ALL: 3,
}

NAME_SEPARATOR = "_"


@dataclass(frozen=True)
class PermissionAtom:
    """One concrete (object, level, scope) triple."""
    object: str
    level: PermissionLevel
    scope: PermissionScope

    def canonical_name(self) -> str:
        return NAME_SEPARATOR.join((self.object, self.level.value, self.scope.value))

    @classmethod
    def parse(cls, name: str) -> "PermissionAtom":
        """
        Parse a canonical name such as ``deals_read-only_own``.

        Raises:
            ValueError: if the name does not decompose into a valid triple
        """
        parts = name.split(NAME_SEPARATOR)
        if len(parts) != 3 or not parts[0]:
            raise ValueError(f"Malformed permission name: {name!r}")
        object_name, level, scope = parts
        try:
            return cls(object_name, PermissionLevel(level), PermissionScope(scope))
        except ValueError:
            raise ValueError(f"Unknown level or scope in permission name: {name!r}") from None


@dataclass(frozen=True)
class LevelSpec:
    level: PermissionLevel
    scopes: tuple[PermissionScope, ...]


@dataclass(frozen=True)
class SystemObjectSpec:
    name: str
    label: str
    level_specs: tuple[LevelSpec, ...]

    def scopes_for(self, level: PermissionLevel) -> list[PermissionScope]:
        for spec in self.level_specs:
            if spec.level == level:
                return list(spec.scopes)
        return []


@dataclass(frozen=True)
class SystemObjectCatalog:
    objects: tuple[SystemObjectSpec, ...]

    def __post_init__(self):
        names = [spec.name for spec in self.objects]
        if len(names) != len(set(names)):
            raise ValueError("Duplicate object names in catalog")
        for name in names:
            if not name or NAME_SEPARATOR in name:
                raise ValueError(f"Invalid catalog object name: {name!r}")

    def list_objects(self) -> list[SystemObjectSpec]:
        return list(self.objects)

    def get(self, object_name: str) -> SystemObjectSpec | None:
        for spec in self.objects:
            if spec.name == object_name:
                return spec
        return None

    def scopes_for(self, object_name: str, level: PermissionLevel | str) -> list[PermissionScope]:
        """
        Scopes valid for an object/level pair.

        Unknown objects or levels yield an empty list; callers treat empty as
        "unsupported".
        """
        spec = self.get(object_name)
        if spec is None:
            return []
        try:
            level = PermissionLevel(level)
        except ValueError:
            return []
        return spec.scopes_for(level)

    def atoms(self) -> list[PermissionAtom]:
        """Full (object, level, scope) cross-product in catalog order."""
        return [
            PermissionAtom(spec.name, level_spec.level, scope)
            for spec in self.objects
            for level_spec in spec.level_specs
            for scope in level_spec.scopes
        ]

    def label_for(self, object_name: str) -> str:
        spec = self.get(object_name)
        return spec.label if spec else object_name


_ALL_LEVELS = tuple(PermissionLevel)
_ALL_SCOPES = tuple(PermissionScope)
_OWNED_SCOPES = (PermissionScope.OWN, PermissionScope.TEAM, PermissionScope.ALL)
_GLOBAL_SCOPES = (PermissionScope.ALL,)


def _object(name: str, label: str, scopes: tuple[PermissionScope, ...],
            levels: tuple[PermissionLevel, ...] = _ALL_LEVELS) -> SystemObjectSpec:
    return SystemObjectSpec(
        name=name,
        label=label,
        level_specs=tuple(LevelSpec(level, scopes) for level in levels),
    )


DEFAULT_CATALOG = SystemObjectCatalog(objects=(
    # CRM records with an owner
    _object("contacts", "Contacts", _ALL_SCOPES),
    _object("companies", "Companies", _ALL_SCOPES),
    _object("deals", "Deals", _ALL_SCOPES),
    _object("tickets", "Tickets", _ALL_SCOPES),
    _object("tasks", "Tasks", _ALL_SCOPES),
    _object("emails", "Emails", _ALL_SCOPES),
    _object("meetings", "Meetings", _ALL_SCOPES),
    _object("calls", "Calls", _ALL_SCOPES),
    _object("leads", "Leads", _OWNED_SCOPES),
    _object("invoices", "Invoices", _OWNED_SCOPES),
    _object("reports", "Reports", _OWNED_SCOPES, levels=(PermissionLevel.READ_ONLY,)),
    # Administration
    _object("products", "Products", _GLOBAL_SCOPES),
    _object("users", "Users", _GLOBAL_SCOPES),
    _object("roles", "Roles", _GLOBAL_SCOPES),
    _object("settings", "Settings", _GLOBAL_SCOPES,
            levels=(PermissionLevel.READ_ONLY, PermissionLevel.READ_EDIT)),
))
