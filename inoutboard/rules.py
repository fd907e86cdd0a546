"""Field-level rules applied to every Person/Resource write.

These are pure functions: they take the request (and, for updates, the
current row) and return the exact field set to persist. Nothing here talks
to the store or the broadcaster.
"""

from typing import Any

from inoutboard.errors import ValidationError
from inoutboard.models import PRESENT, NameBody, Person, PersonCreate

PERSON_FIELDS = (
    "name",
    "group",
    "status",
    "comment",
    "estimated_return",
    "resource_id",
)

# Cleared whenever someone is marked present.
AWAY_DETAIL_DEFAULTS: dict[str, Any] = {
    "comment": "",
    "estimated_return": "",
    "resource_id": None,
}


def apply_person_patch(
    current: Person | None, patch: dict[str, Any]
) -> dict[str, Any]:
    """Compute the final field set for a partial Person update.

    ``patch`` holds only the fields present in the request. Setting status
    to ``"IN"`` overrides any co-supplied comment, estimated_return and
    resource_id with their empty defaults.

    ``current`` is the stored row, or None for a row not yet created. The
    present rules only read the request.
    """
    final = {k: patch[k] for k in PERSON_FIELDS if k in patch}
    if not final:
        raise ValidationError("No fields to update")

    for key in ("name", "group"):
        if key in final:
            value = (final[key] or "").strip()
            if not value:
                raise ValidationError(f"{key} must not be empty")
            final[key] = value

    if "status" in final:
        status = (final["status"] or "").strip()
        if not status:
            raise ValidationError("status must not be empty")
        final["status"] = status
        if status == PRESENT:
            final.update(AWAY_DETAIL_DEFAULTS)

    for key in ("comment", "estimated_return"):
        if key in final and final[key] is None:
            final[key] = ""

    if "resource_id" in final:
        final["resource_id"] = final["resource_id"] or None

    return final


def new_person_fields(request: PersonCreate) -> dict[str, Any]:
    """Field set for a Person create; resource_id can only be set by update."""
    name = request.name.strip()
    group = request.group.strip()
    if not name or not group:
        raise ValidationError("Name and group are required")
    return {
        "name": name,
        "group": group,
        "status": (request.status or "").strip() or PRESENT,
        **{k: v for k, v in AWAY_DETAIL_DEFAULTS.items() if k != "resource_id"},
    }


def resource_fields(request: NameBody) -> dict[str, Any]:
    name = request.name.strip()
    if not name:
        raise ValidationError("Name is required")
    return {"name": name}


def group_fields(request: NameBody) -> dict[str, Any]:
    name = request.name.strip()
    if not name:
        raise ValidationError("Name is required")
    return {"name": name}
