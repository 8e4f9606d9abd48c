"""Site definition loading and validation.

Parses the JSON site definition into entity definitions and rejects unsafe
slugs and field names at load time, before any schema is generated.
"""

import json
from pathlib import Path
from typing import Any

from keelson.core.exceptions import DefinitionError, DefinitionIssue
from keelson.core.logging import get_logger
from keelson.domain.entities.definition import (
    DefinitionSet,
    EntityDefinition,
    EntityKind,
    EntityOptions,
    GlobalDataType,
)
from keelson.domain.entities.field import FieldDefinition, FieldType
from keelson.domain.services.naming import validate_field_name, validate_slug

logger = get_logger(__name__)

_SECTIONS = {
    "collections": EntityKind.COLLECTION,
    "globals": EntityKind.GLOBAL,
    "blocks": EntityKind.BLOCK,
}


class DefinitionLoader:
    """Loads entity definitions from JSON documents."""

    @classmethod
    def load_file(cls, path: str | Path) -> DefinitionSet:
        """Load a site definition file.

        Args:
            path: Path to a JSON document with collections, globals and blocks sections.

        Returns:
            The parsed definitions.

        Raises:
            DefinitionError: If the file cannot be read or the definitions are invalid.
        """
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise DefinitionError(f"Definition file not found: {path}") from None
        except json.JSONDecodeError as e:
            raise DefinitionError(f"Definition file is not valid JSON: {path} ({e})") from e

        definitions = cls.load_dict(data)
        logger.info(
            "Definitions loaded",
            path=str(path),
            collections=len(definitions.collections),
            globals=len(definitions.globals),
            blocks=len(definitions.blocks),
        )
        return definitions

    @classmethod
    def load_dict(cls, data: dict[str, Any]) -> DefinitionSet:
        """Parse a site definition document.

        Args:
            data: Mapping with optional 'collections', 'globals' and 'blocks' sections.

        Returns:
            The parsed definitions.

        Raises:
            DefinitionError: If any definition is invalid. All issues are reported together.
        """
        if not isinstance(data, dict):
            raise DefinitionError("Site definition must be an object")

        unknown = sorted(set(data) - set(_SECTIONS))
        issues: list[DefinitionIssue] = [
            DefinitionIssue(section, f"Unknown section '{section}'", "unknown_section")
            for section in unknown
        ]
        definitions = DefinitionSet()

        for section, kind in _SECTIONS.items():
            entries = data.get(section) or {}
            if not isinstance(entries, dict):
                issues.append(DefinitionIssue(section, "Section must map slugs to definitions", "section_not_object"))
                continue
            for slug, raw in entries.items():
                path = f"{kind.value}.{slug}"
                slug_issues = validate_slug(slug, path)
                if slug_issues:
                    issues.extend(slug_issues)
                    continue
                try:
                    definitions.add(cls.parse_entity(kind, slug, raw))
                except DefinitionError as e:
                    issues.extend(e.issues or [DefinitionIssue(path, str(e), "invalid_definition")])

        if issues:
            raise DefinitionError("Invalid site definition", issues)
        return definitions

    @classmethod
    def parse_entity(cls, kind: EntityKind, slug: str, raw: dict[str, Any]) -> EntityDefinition:
        """Parse a single entity definition.

        Args:
            kind: The entity kind.
            slug: The entity slug.
            raw: The raw definition.

        Returns:
            The parsed entity definition.
        """
        path = f"{kind.value}.{slug}"
        if not isinstance(raw, dict):
            raise DefinitionError(
                "Invalid entity definition",
                [DefinitionIssue(path, "Definition must be an object", "definition_not_object")],
            )

        name = raw.get("name") or slug
        if isinstance(name, dict):
            singular = name.get("singular") or slug
            plural = name.get("plural") or singular
        else:
            singular = str(name)
            plural = str(raw.get("namePlural") or name)

        data_type = None
        if kind == EntityKind.GLOBAL:
            raw_type = raw.get("dataType") or (raw.get("options") or {}).get("dataType") or "repeatable"
            try:
                data_type = GlobalDataType(raw_type)
            except ValueError:
                raise DefinitionError(
                    "Invalid entity definition",
                    [DefinitionIssue(f"{path}.dataType", f"Unknown data type '{raw_type}'", "invalid_data_type")],
                ) from None

        raw_fields = raw.get("fields") or {}
        if not isinstance(raw_fields, dict):
            raise DefinitionError(
                "Invalid entity definition",
                [DefinitionIssue(f"{path}.fields", "Fields must map names to definitions", "fields_not_object")],
            )

        issues = cls.validate_field_names(raw_fields, f"{path}.fields")
        if issues:
            raise DefinitionError("Invalid entity definition", issues)

        fields = {
            field_name: FieldDefinition.from_dict(field_name, field_def, f"{path}.fields.{field_name}")
            for field_name, field_def in raw_fields.items()
        }
        issues = cls.validate_nesting(fields, f"{path}.fields", top_level=True)
        if issues:
            raise DefinitionError("Invalid entity definition", issues)

        options = EntityOptions.from_dict(raw.get("options"), data_type=data_type)
        if kind == EntityKind.BLOCK and options.blocks_enabled:
            raise DefinitionError(
                "Invalid entity definition",
                [DefinitionIssue(f"{path}.options.blocks", "Blocks cannot contain blocks", "nested_blocks")],
            )

        return EntityDefinition(
            kind=kind,
            slug=slug,
            name_singular=singular,
            name_plural=plural,
            fields=fields,
            options=options,
            description=raw.get("description"),
            icon=raw.get("icon"),
        )

    @classmethod
    def validate_field_names(cls, raw_fields: dict[str, Any], path: str) -> list[DefinitionIssue]:
        """Recursively validate field names, including array item properties."""
        issues: list[DefinitionIssue] = []
        for field_name, field_def in raw_fields.items():
            field_path = f"{path}.{field_name}"
            issues.extend(validate_field_name(field_name, field_path))
            if isinstance(field_def, dict):
                items = field_def.get("items")
                if isinstance(items, dict) and isinstance(items.get("properties"), dict):
                    issues.extend(cls.validate_field_names(items["properties"], f"{field_path}.items.properties"))
                if isinstance(field_def.get("properties"), dict):
                    issues.extend(cls.validate_field_names(field_def["properties"], f"{field_path}.properties"))
        return issues

    @classmethod
    def validate_nesting(
        cls, fields: dict[str, FieldDefinition], path: str, top_level: bool
    ) -> list[DefinitionIssue]:
        """Reject field types that are not allowed at a nesting level."""
        issues: list[DefinitionIssue] = []
        for name, field_def in fields.items():
            field_path = f"{path}.{name}"
            if field_def.type == FieldType.TAGS and not top_level:
                issues.append(
                    DefinitionIssue(field_path, "Tags fields are only allowed at entity level", "nested_tags")
                )
            if field_def.type == FieldType.ARRAY and field_def.properties:
                issues.extend(
                    cls.validate_nesting(field_def.properties, f"{field_path}.items.properties", top_level=False)
                )
        return issues
