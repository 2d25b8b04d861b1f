"""Validation of automation forms, Grist API keys and Grist identifiers.

Messages are user-facing and in French. Inputs are plain mappings (decoded
JSON bodies) so type errors are reported as validation errors too.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from gristips.constants import (
    API_KEY_MAX_LENGTH,
    API_KEY_MIN_LENGTH,
    AUTOMATION_DESCRIPTION_MAX_LENGTH,
    AUTOMATION_NAME_MAX_LENGTH,
    AUTOMATION_NAME_SHORT_LENGTH,
)

GRIST_KEY_PATTERN = re.compile(r"^[a-fA-F0-9]{32}$")
API_KEY_CHARS_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+$")
GRIST_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")

# Target types each source column type can be copied into
COLUMN_COMPATIBILITY: dict[str, tuple[str, ...]] = {
    "Text": ("Text", "Choice"),
    "Numeric": ("Numeric", "Int", "Text"),
    "Int": ("Int", "Numeric", "Text"),
    "Bool": ("Bool", "Text"),
    "Date": ("Date", "DateTime", "Text"),
    "DateTime": ("DateTime", "Date", "Text"),
    "Choice": ("Choice", "Text"),
    "Ref": ("Ref", "Text"),
}

CONVERSION_WARNINGS: dict[tuple[str, str], str] = {
    ("DateTime", "Date"): "Conversion DateTime → Date : les informations d'heure seront perdues",
    ("Numeric", "Int"): "Conversion Numeric → Int : les décimales seront tronquées",
    ("Ref", "Text"): (
        "Conversion Ref → Text : seuls les IDs seront copiés, pas les valeurs référencées"
    ),
}


@dataclass
class ValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass
class ColumnTypeCompatibility:
    source_type: str
    target_type: str
    is_compatible: bool = True
    warning: str | None = None


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def _check_required_id(
    result: ValidationResult, value: Any, missing: str, empty: str
) -> None:
    if not value or not isinstance(value, str):
        result.errors.append(missing)
    elif not value.strip():
        result.errors.append(empty)


def validate_automation_form(data: Mapping[str, Any]) -> ValidationResult:
    """Validate the data submitted to create an automation."""
    result = ValidationResult()

    name = data.get("name")
    if _is_blank(name):
        result.errors.append("Le nom de l'automation ne peut pas être vide")
    else:
        trimmed = name.strip()
        if len(trimmed) > AUTOMATION_NAME_MAX_LENGTH:
            result.errors.append(
                f"Le nom de l'automation ne peut pas dépasser "
                f"{AUTOMATION_NAME_MAX_LENGTH} caractères"
            )
        elif len(trimmed) < AUTOMATION_NAME_SHORT_LENGTH:
            result.warnings.append(
                "Le nom de l'automation est très court "
                f"(moins de {AUTOMATION_NAME_SHORT_LENGTH} caractères)"
            )

    description = data.get("description")
    if isinstance(description, str) and len(description) > AUTOMATION_DESCRIPTION_MAX_LENGTH:
        result.errors.append(
            f"La description ne peut pas dépasser {AUTOMATION_DESCRIPTION_MAX_LENGTH} caractères"
        )

    _check_required_id(
        result,
        data.get("sourceDocumentId"),
        "Le document source est requis",
        "Le document source ne peut pas être vide",
    )
    _check_required_id(
        result,
        data.get("sourceTableId"),
        "La table source est requise",
        "La table source ne peut pas être vide",
    )
    _check_required_id(
        result,
        data.get("targetDocumentId"),
        "Le document cible est requis",
        "Le document cible ne peut pas être vide",
    )
    _check_required_id(
        result,
        data.get("targetTableId"),
        "La table cible est requise",
        "La table cible ne peut pas être vide",
    )

    columns = data.get("selectedColumns")
    if not isinstance(columns, list):
        result.errors.append("Les colonnes sélectionnées sont requises")
    elif not columns:
        result.errors.append("Au moins une colonne doit être sélectionnée")
    else:
        hashable = [c for c in columns if isinstance(c, str)]
        if len(set(hashable)) != len(hashable):
            result.warnings.append("Des colonnes en double ont été détectées")
        if any(_is_blank(c) for c in columns):
            result.errors.append("Certaines colonnes sélectionnées sont invalides")

    if (
        data.get("sourceDocumentId") == data.get("targetDocumentId")
        and data.get("sourceTableId") == data.get("targetTableId")
    ):
        result.warnings.append(
            "La table source et la table cible sont identiques. Cela peut créer des conflits."
        )

    return result


def validate_api_key(api_key: Any) -> ValidationResult:
    """Check the format of a Grist API key before calling Grist with it.

    Grist keys are 32 hexadecimal characters; other formats are accepted with
    warnings.
    """
    result = ValidationResult()

    if not api_key or not isinstance(api_key, str):
        result.errors.append("La clé API est requise")
        return result

    trimmed = api_key.strip()

    if not trimmed:
        result.errors.append("La clé API ne peut pas être vide")
    elif len(trimmed) < API_KEY_MIN_LENGTH:
        result.errors.append(
            f"La clé API semble trop courte (moins de {API_KEY_MIN_LENGTH} caractères)"
        )
    elif len(trimmed) > API_KEY_MAX_LENGTH:
        result.errors.append(
            f"La clé API semble trop longue (plus de {API_KEY_MAX_LENGTH} caractères)"
        )

    if " " in trimmed:
        result.warnings.append("La clé API contient des espaces, ce qui est inhabituel")

    if GRIST_KEY_PATTERN.match(trimmed):
        return result

    if not API_KEY_CHARS_PATTERN.match(trimmed):
        result.warnings.append("La clé API contient des caractères inhabituels")

    result.warnings.append(
        "La clé API ne correspond pas au format Grist habituel (32 caractères hexadécimaux)"
    )
    return result


def check_column_type_compatibility(source_type: str, target_type: str) -> ColumnTypeCompatibility:
    """Tell whether a source column can be copied into a target column.

    Automations store selected column ids, not column types, so the create
    route does not call this. It is a helper for API clients that check a
    mapping against ``GET /api/admin/grist/columns`` before creating an
    automation.
    """
    compatibility = ColumnTypeCompatibility(source_type=source_type, target_type=target_type)

    if source_type == target_type:
        return compatibility

    if target_type not in COLUMN_COMPATIBILITY.get(source_type, ()):
        compatibility.is_compatible = False
        compatibility.warning = (
            f"Type incompatible: {source_type} → {target_type}. "
            "Les données pourraient être perdues ou corrompues."
        )
        return compatibility

    compatibility.warning = CONVERSION_WARNINGS.get(
        (source_type, target_type),
        f"Conversion de type {source_type} → {target_type} : "
        "vérifiez que les données sont compatibles",
    )
    return compatibility


def validate_automation_update(data: Mapping[str, Any]) -> ValidationResult:
    """Validate a partial update; only the fields present are checked."""
    result = ValidationResult()

    if "name" in data:
        name = data["name"]
        if not isinstance(name, str):
            result.errors.append("Le nom doit être une chaîne de caractères")
        elif not name.strip():
            result.errors.append("Le nom ne peut pas être vide")
        elif len(name.strip()) > AUTOMATION_NAME_MAX_LENGTH:
            result.errors.append(
                f"Le nom ne peut pas dépasser {AUTOMATION_NAME_MAX_LENGTH} caractères"
            )

    if "description" in data:
        description = data["description"]
        if description is not None and not isinstance(description, str):
            result.errors.append("La description doit être une chaîne de caractères ou null")
        elif description and len(description) > AUTOMATION_DESCRIPTION_MAX_LENGTH:
            result.errors.append(
                f"La description ne peut pas dépasser "
                f"{AUTOMATION_DESCRIPTION_MAX_LENGTH} caractères"
            )

    if "selectedColumns" in data:
        columns = data["selectedColumns"]
        if not isinstance(columns, list):
            result.errors.append("Les colonnes sélectionnées doivent être un tableau")
        elif not columns:
            result.errors.append("Au moins une colonne doit être sélectionnée")

    return result


def validate_grist_ids(document_id: Any = None, table_id: Any = None) -> ValidationResult:
    """Validate Grist document/table ids. ``None`` means "not provided"."""
    result = ValidationResult()

    if document_id is not None:
        if not document_id or not isinstance(document_id, str):
            result.errors.append("L'ID du document est requis")
        elif not document_id.strip():
            result.errors.append("L'ID du document ne peut pas être vide")
        elif not GRIST_ID_PATTERN.match(document_id):
            result.warnings.append("L'ID du document contient des caractères inhabituels")

    if table_id is not None:
        if not table_id or not isinstance(table_id, str):
            result.errors.append("L'ID de la table est requis")
        elif not table_id.strip():
            result.errors.append("L'ID de la table ne peut pas être vide")
        elif not GRIST_ID_PATTERN.match(table_id):
            result.warnings.append("L'ID de la table contient des caractères inhabituels")

    return result
