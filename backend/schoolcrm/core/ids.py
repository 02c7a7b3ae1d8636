import uuid


def as_uuid(value: object) -> uuid.UUID | None:
    """Coerce a path/token id to ``UUID``; ``None`` when it is not one."""
    if isinstance(value, uuid.UUID):
        return value
    if value is None:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None
