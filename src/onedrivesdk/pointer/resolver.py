"""
Pointer resolution: IdPointer / PathPointer to canonical API paths.

Resolved forms:
    /drive/items/{id}                   [/operator]
    /drives/{driveId}/items/{id}        [/operator]
    /drive/root:/{seg}/{seg}            [:/operator]
    /drive/root                         [/operator]

Every path segment is percent-encoded on its own so that the literal "/"
separators survive.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from onedrivesdk.errors import InvalidArgumentError

from .pointer import IdPointer, Operator, PathPointer, Pointer

# Operators usable on an item addressed by id (or on the root path).
_SLASH_OPERATORS: frozenset[Operator] = frozenset(
    {Operator.CONTENT, Operator.CHILDREN, Operator.ACTION_COPY}
)
# Operators usable on a non-root path. upload.createSession needs the target
# file name, which only a path carries.
_COLON_OPERATORS: frozenset[Operator] = frozenset(Operator)


def encode_segment(segment: str) -> str:
    return quote(segment, safe="")


def resolve(pointer: Pointer) -> str:
    """Return the canonical API path of the item itself."""
    if isinstance(pointer, IdPointer):
        return f"{_drive_prefix(pointer.drive_id)}/items/{quote(pointer.item_id, safe='!')}"
    if isinstance(pointer, PathPointer):
        root = f"{_drive_prefix(pointer.drive_id)}/root"
        if pointer.is_root:
            return root
        return root + ":/" + "/".join(encode_segment(s) for s in pointer.segments)
    raise InvalidArgumentError(
        "Unsupported pointer type",
        details={"type": type(pointer).__name__},
    )


def resolve_with_operator(pointer: Pointer, operator: Operator) -> str:
    """
    Return the API path of `operator` applied to the item.

    Raises:
        InvalidArgumentError: if the operator is not supported for this pointer kind.
    """
    operator = _coerce_operator(operator)
    base = resolve(pointer)

    if isinstance(pointer, PathPointer) and not pointer.is_root:
        allowed = _COLON_OPERATORS
        joined = f"{base}:/{operator.value}"
    else:
        allowed = _SLASH_OPERATORS
        joined = f"{base}/{operator.value}"

    if operator not in allowed:
        raise InvalidArgumentError(
            "Operator is not supported for this pointer",
            details={"operator": operator.value, "pointer": repr(pointer)},
        )
    return joined


def resolve_child(parent: PathPointer, name: str) -> PathPointer:
    """Return a pointer to `name` inside the folder addressed by `parent`."""
    if not isinstance(parent, PathPointer):
        raise InvalidArgumentError("resolve_child requires a PathPointer parent")
    if not isinstance(name, str) or not name or "/" in name:
        raise InvalidArgumentError(
            "child name must be a non-empty string without '/'",
            details={"name": name},
        )
    return PathPointer(parent.segments + (name,), drive_id=parent.drive_id)


def upload_session_path(parent: Pointer, file_name: str) -> str:
    """API path that creates an upload session for `file_name` inside `parent`."""
    if isinstance(parent, IdPointer):
        return f"{upload_target_path(parent, file_name)}:/{Operator.UPLOAD_CREATE_SESSION.value}"
    if isinstance(parent, PathPointer):
        return resolve_with_operator(
            resolve_child(parent, file_name),
            Operator.UPLOAD_CREATE_SESSION,
        )
    raise InvalidArgumentError(
        "Unsupported pointer type",
        details={"type": type(parent).__name__},
    )


def upload_target_path(parent: Pointer, file_name: str) -> str:
    """API path of the item named `file_name` inside `parent`."""
    if isinstance(parent, IdPointer):
        if not isinstance(file_name, str) or not file_name or "/" in file_name:
            raise InvalidArgumentError(
                "file name must be a non-empty string without '/'",
                details={"file_name": file_name},
            )
        return f"{resolve(parent)}:/{encode_segment(file_name)}"
    if isinstance(parent, PathPointer):
        return resolve(resolve_child(parent, file_name))
    raise InvalidArgumentError(
        "Unsupported pointer type",
        details={"type": type(parent).__name__},
    )


def to_reference(pointer: Pointer) -> dict[str, Any]:
    """Body fragment used as "parentReference" in move/copy requests."""
    if isinstance(pointer, IdPointer):
        ref: dict[str, Any] = {"id": pointer.item_id}
    elif isinstance(pointer, PathPointer):
        ref = {"path": resolve(pointer)}
    else:
        raise InvalidArgumentError(
            "Unsupported pointer type",
            details={"type": type(pointer).__name__},
        )
    if pointer.drive_id is not None:
        ref["driveId"] = pointer.drive_id
    return ref


def _drive_prefix(drive_id: str | None) -> str:
    if drive_id is None:
        return "/drive"
    return f"/drives/{quote(drive_id, safe='!')}"


def _coerce_operator(operator: Operator | str) -> Operator:
    try:
        return Operator(operator)
    except ValueError as exc:
        raise InvalidArgumentError(
            "Unknown operator",
            details={"operator": operator},
            cause=exc,
        ) from exc
