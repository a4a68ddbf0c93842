"""
Conversion between the admin permission matrix and flat permission id lists.

The matrix holds one scope choice per (object, level) cell; storage holds the
ids of the permission definitions those cells name.
"""
from collections.abc import Iterable, Sequence

from app.features.permissions.catalog import PermissionAtom
from app.features.permissions.models import Permission
from app.features.permissions.schemas import ObjectPermission
from app.utils import get_logger


log = get_logger(__name__)


class PermissionMatrixCodec:
    """
    Built from the permission definitions currently in storage. The codec
    never creates definitions: a cell whose canonical name is unknown is
    dropped on encode, and an unknown id is dropped on decode.
    """

    def __init__(self, permissions: Iterable[Permission]):
        self._id_by_name: dict[str, str] = {}
        self._atom_by_id: dict[str, PermissionAtom] = {}
        for permission in permissions:
            try:
                atom = permission.atom
            except ValueError:
                log.warning("Ignoring permission with malformed name %r", permission.name)
                continue
            self._id_by_name[permission.name] = permission.id
            self._atom_by_id[permission.id] = atom

    def encode(self, matrix: Sequence[ObjectPermission]) -> list[str]:
        permission_ids: list[str] = []
        for row in matrix:
            for level, scope in row.levels.items():
                if scope is None:
                    continue
                name = PermissionAtom(row.object, level, scope).canonical_name()
                permission_id = self._id_by_name.get(name)
                if permission_id is None:
                    log.debug("No permission definition named %s, dropping cell", name)
                    continue
                if permission_id not in permission_ids:
                    permission_ids.append(permission_id)
        return permission_ids

    def decode(self, permission_ids: Iterable[str]) -> list[ObjectPermission]:
        """
        Group permission ids into matrix rows, in order of first appearance.

        Two ids for the same (object, level) cannot both be represented; the
        one processed last wins.
        """
        rows: dict[str, ObjectPermission] = {}
        for permission_id in permission_ids:
            atom = self._atom_by_id.get(permission_id)
            if atom is None:
                log.debug("Unknown permission id %s, dropping", permission_id)
                continue
            row = rows.get(atom.object)
            if row is None:
                row = rows[atom.object] = ObjectPermission(object=atom.object)
            row.levels[atom.level] = atom.scope
        return list(rows.values())
