"""
Role constants for the SchoolCRM application.

Base roles form a strict ascending hierarchy; the position of a role in that
hierarchy is its *power*. Lateral roles (deputy_axh, sysadmin, ...) are
aliases that resolve to exactly one base role for authorization purposes.
"""
import enum
import re


class Role(str, enum.Enum):
    # Base hierarchy, lowest first
    USER = "user"
    STAFF = "staff"
    TEACHER = "teacher"
    TEACHER_PLUS = "teacher_plus"
    DEPUTY = "deputy"
    DEPUTY_PLUS = "deputy_plus"
    DIRECTOR = "director"

    # Lateral roles
    DEPUTY_AXH = "deputy_axh"
    SYSADMIN = "sysadmin"
    FOOD_DISPATCHER = "food_dispatcher"
    PSYCHOLOGIST = "psychologist"
    LIBRARIAN = "librarian"
    EDUCATION_ADVISER = "education_adviser"


ROLE_ORDER: tuple[Role, ...] = (
    Role.USER,
    Role.STAFF,
    Role.TEACHER,
    Role.TEACHER_PLUS,
    Role.DEPUTY,
    Role.DEPUTY_PLUS,
    Role.DIRECTOR,
)

LATERAL_ROLES: dict[Role, Role] = {
    Role.DEPUTY_AXH: Role.DEPUTY,
    Role.SYSADMIN: Role.STAFF,
    Role.FOOD_DISPATCHER: Role.STAFF,
    Role.PSYCHOLOGIST: Role.TEACHER,
    Role.LIBRARIAN: Role.TEACHER,
    Role.EDUCATION_ADVISER: Role.TEACHER,
}

ROLE_LABELS: dict[Role, str] = {
    Role.USER: "Пользователь",
    Role.STAFF: "Техперсонал",
    Role.TEACHER: "Педагог",
    Role.TEACHER_PLUS: "Руководитель МО",
    Role.DEPUTY: "Заместитель",
    Role.DEPUTY_PLUS: "Заместитель*",
    Role.DIRECTOR: "Директор",
    Role.DEPUTY_AXH: "Заместитель по АХЧ",
    Role.SYSADMIN: "Системный администратор",
    Role.FOOD_DISPATCHER: "Диспетчер по питанию",
    Role.PSYCHOLOGIST: "Психолог",
    Role.LIBRARIAN: "Библиотекарь",
    Role.EDUCATION_ADVISER: "Советник по воспитанию",
}

# Free-form spellings seen in imported user lists and older tokens
_SPELLINGS: dict[str, Role] = {
    "teacher+": Role.TEACHER_PLUS,
    "педагог+": Role.TEACHER_PLUS,
    "педагог плюс": Role.TEACHER_PLUS,
    "учитель+": Role.TEACHER_PLUS,
    "учитель": Role.TEACHER,
    "deputy+": Role.DEPUTY_PLUS,
    "заместитель+": Role.DEPUTY_PLUS,
    "заместитель плюс": Role.DEPUTY_PLUS,
}

_LOOKUP: dict[str, Role] = {
    **{role.value: role for role in Role},
    **{label.lower(): role for role, label in ROLE_LABELS.items()},
    **_SPELLINGS,
}

DEFAULT_ROLE = Role.USER


def _normalize(value: str) -> str:
    s = re.sub(r"\s*\+\s*", "+", value.strip().lower())
    return re.sub(r"\s+", " ", s)


def parse_role(value: object) -> Role | None:
    """Resolve any accepted spelling to a ``Role`` member without canonicalizing."""
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return None
    return _LOOKUP.get(_normalize(value))


def canonicalize(value: object) -> Role | None:
    """Map a role or alias to its base role; ``None`` for unrecognized input."""
    role = parse_role(value)
    if role is None:
        return None
    return LATERAL_ROLES.get(role, role)


def power_of(value: object) -> int:
    """1-based position in ``ROLE_ORDER``; 0 for missing or unknown roles."""
    role = canonicalize(value)
    if role is None:
        return 0
    return ROLE_ORDER.index(role) + 1


def can_view_tasks(role: object) -> bool:
    return power_of(role) >= power_of(Role.TEACHER)


def can_create_tasks(role: object) -> bool:
    return power_of(role) >= power_of(Role.DEPUTY)


def has_full_access(role: object) -> bool:
    return power_of(role) >= power_of(Role.DEPUTY_PLUS)


def can_view_admin(role: object) -> bool:
    return has_full_access(role)


ALL_ROLES = [role.value for role in Role]
