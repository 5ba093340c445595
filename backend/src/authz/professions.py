"""Professions, permission scopes and the default permission sets.

Professions (one standard system role each):
- AVOCAT: lawyers, personal dossiers and clients
- NOTAIRE: notaries, authentic deeds and their register (minutier)
- HUISSIER: bailiffs, writs (exploits)
- MAGISTRAT: judges, organization-wide case and moderation access
- ETUDIANT: students, read-only research and the learning system
- JURISTE_ENTREPRISE: in-house counsel, organization-wide documents
- ADMIN: platform administration, included regardless of organization

Two tables live here:
- DEFAULT_ROLE_PERMISSIONS: catalog permissions seeded for each standard role
- ROLE_PERMISSIONS: flat permission names used by the tenant context fast path
"""

from enum import Enum
from typing import Dict, List


class Profession(str, Enum):
    """Professional roles.

    Values are stored as TEXT in the database and must match exactly.
    """
    AVOCAT = "avocat"
    NOTAIRE = "notaire"
    HUISSIER = "huissier"
    MAGISTRAT = "magistrat"
    ETUDIANT = "etudiant"
    JURISTE_ENTREPRISE = "juriste_entreprise"
    ADMIN = "admin"


class PermissionScope(str, Enum):
    """Breadth at which a permission applies."""
    GLOBAL = "global"
    ORGANIZATION = "organization"
    PERSONAL = "personal"
    ROLE_SPECIFIC = "role_specific"


# Least privileged profession, used when a user has no primary profile
DEFAULT_PROFESSION = Profession.ETUDIANT

SYSTEM_ROLE_NAMES: Dict[Profession, str] = {
    Profession.AVOCAT: "Avocat Standard",
    Profession.NOTAIRE: "Notaire Standard",
    Profession.HUISSIER: "Huissier Standard",
    Profession.MAGISTRAT: "Magistrat Standard",
    Profession.ETUDIANT: "Étudiant Standard",
    Profession.JURISTE_ENTREPRISE: "Juriste Entreprise Standard",
    Profession.ADMIN: "Administrateur Système",
}

CRUD = ["create", "read", "update", "delete"]

_G = PermissionScope.GLOBAL
_O = PermissionScope.ORGANIZATION
_P = PermissionScope.PERSONAL
_R = PermissionScope.ROLE_SPECIFIC


def _perm(resource: str, actions: List[str], scope: PermissionScope) -> dict:
    return {"resource": resource, "actions": actions, "scope": scope.value}


_LEGAL_RESEARCH = [
    _perm("jurisprudence", ["read", "search"], _G),
    _perm("legal_text", ["read", "search"], _G),
]

_PRACTICE_COMMON = [
    _perm("document", CRUD, _P),
    _perm("template", ["read", "create"], _R),
    _perm("signature", ["create", "read"], _P),
    _perm("client", ["create", "read", "update"], _P),
    *_LEGAL_RESEARCH,
    _perm("invoice", ["create", "read", "update"], _P),
    _perm("billing", ["calculate", "read"], _P),
    _perm("moderation_report", ["create", "read"], _P),
    _perm("report", ["create", "read"], _P),
]

DEFAULT_ROLE_PERMISSIONS: Dict[Profession, List[dict]] = {
    Profession.AVOCAT: _PRACTICE_COMMON + [
        _perm("dossier", CRUD, _P),
        _perm("case", ["create", "read", "update"], _P),
        _perm("search", ["create", "read"], _P),
    ],
    Profession.NOTAIRE: _PRACTICE_COMMON + [
        _perm("acte_authentique", ["create", "read", "update", "sign"], _P),
        _perm("minutier", ["create", "read", "search", "archive", "update"], _P),
    ],
    Profession.HUISSIER: _PRACTICE_COMMON + [
        _perm("exploit", ["create", "read", "update"], _P),
    ],
    Profession.MAGISTRAT: [
        _perm("document", ["create", "read", "update"], _P),
        _perm("template", ["read", "create"], _R),
        _perm("jurisprudence", ["read", "search", "analyze"], _G),
        _perm("legal_text", ["read", "search", "analyze"], _G),
        _perm("search", ["create", "read"], _P),
        _perm("case", ["read", "update", "approve"], _O),
        _perm("moderation_report", ["create", "read"], _P),
        _perm("moderation_item", ["read", "moderate"], _O),
        _perm("report", ["create", "read"], _O),
    ],
    Profession.ETUDIANT: [
        _perm("document", ["create", "read"], _P),
        _perm("template", ["read"], _R),
        *_LEGAL_RESEARCH,
        _perm("search", ["create", "read"], _P),
        _perm("learning_module", ["read"], _G),
        _perm("learning_content", ["read"], _G),
        _perm("exercise", ["read", "submit", "attempt"], _P),
        _perm("assessment", ["read", "submit"], _P),
        _perm("learning_progress", ["read", "update", "progress"], _P),
        _perm("moderation_report", ["create", "read"], _P),
    ],
    Profession.JURISTE_ENTREPRISE: [
        _perm("document", CRUD, _O),
        _perm("template", ["read", "create"], _R),
        *_LEGAL_RESEARCH,
        _perm("search", ["create", "read"], _P),
        _perm("moderation_report", ["create", "read"], _P),
        _perm("report", ["create", "read"], _O),
    ],
    Profession.ADMIN: [
        _perm("user", CRUD, _G),
        _perm("organization", CRUD, _G),
        _perm("role", CRUD, _G),
        _perm("permission", CRUD, _G),
        _perm("audit", ["read", "monitor"], _G),
        _perm("system", ["configure", "monitor"], _G),
        _perm("configuration", ["create", "read", "update"], _G),
        _perm("report", ["create", "read"], _G),
        _perm("learning_module", CRUD, _G),
        _perm("moderation", CRUD + ["moderate"], _G),
        _perm("moderation_item", CRUD + ["moderate"], _G),
        _perm("moderation_report", CRUD, _G),
    ],
}

# Flat permission names for the tenant context; "*" grants everything
ROLE_PERMISSIONS: Dict[str, List[str]] = {
    Profession.AVOCAT.value: ["read_dossier", "write_dossier", "read_jurisprudence", "calculate_fees"],
    Profession.NOTAIRE.value: ["read_acte", "write_acte", "read_minutier", "write_minutier"],
    Profession.HUISSIER.value: ["read_exploit", "write_exploit", "calculate_fees"],
    Profession.MAGISTRAT.value: ["read_jurisprudence", "write_jugement", "read_dossier"],
    Profession.ETUDIANT.value: ["read_cours", "read_exercice", "read_jurisprudence_publique"],
    Profession.JURISTE_ENTREPRISE.value: ["read_contrat", "write_contrat", "read_veille"],
    Profession.ADMIN.value: ["*"],
}


def get_role_permissions(role: str) -> List[str]:
    """Static permission list for a role name; unknown roles get nothing.

    Examples:
        >>> get_role_permissions("huissier")
        ['read_exploit', 'write_exploit', 'calculate_fees']
        >>> get_role_permissions("stagiaire")
        []
    """
    return list(ROLE_PERMISSIONS.get(role, []))
