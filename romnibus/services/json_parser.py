"""Parser for JSON signature exports (one titled game per document)."""

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog

from ..models import RomDescriptor, SignatureGame
from .deduplicator import dedup_roms
from .errors import ParseError
from .signature_parser import SignatureParser, normalize_digest

log = structlog.stdlib.get_logger()

ROMS_ATTRIBUTE = "ROMs"


def _field(obj: Mapping[str, Any], name: str) -> Any:
    """Look up a key case-insensitively, preferring an exact match."""
    if name in obj:
        return obj[name]
    lowered = name.lower()
    for key, value in obj.items():
        if isinstance(key, str) and key.lower() == lowered:
            return value
    return None


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _size(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def resolve_roms_value(value: Any) -> list[Mapping[str, Any]]:
    """Normalize a ``ROMs`` attribute value to a list of descriptor objects.

    The export writes either an array of descriptors or a single descriptor
    object. Array items that are not objects are dropped.
    """
    if isinstance(value, list):
        return [item for item in value if isinstance(item, Mapping)]
    if isinstance(value, Mapping):
        return [value]
    return []


def rom_from_descriptor(descriptor: Mapping[str, Any]) -> RomDescriptor:
    return RomDescriptor(
        name=_text(_field(descriptor, "Name")),
        size=_size(_field(descriptor, "Size")),
        crc=normalize_digest(_field(descriptor, "Crc")),
        md5=normalize_digest(_field(descriptor, "Md5")),
        sha1=normalize_digest(_field(descriptor, "Sha1")),
        sha256=normalize_digest(_field(descriptor, "Sha256")),
    )


class JsonSignatureParser(SignatureParser):
    """Reads a signature export with ``SignatureDataObjects`` and ``Attributes``.

    When the signature descriptors name several distinct platforms, the
    document produces one game per platform, each carrying the same ROM set.
    """

    extensions = (".json",)
    merges_across_files = True

    def _extract_games(self, content: bytes, platform_hint: str, source_name: str) -> list[SignatureGame]:
        document = self._load(content, source_name)

        platforms = self._platforms(document)
        roms = dedup_roms(self._roms(document))
        title = _text(_field(document, "Name"))
        filename = Path(source_name).stem if source_name else ""

        if not platforms:
            platforms = [platform_hint.strip()]

        games = [
            SignatureGame(name=title, filename=filename, platform=platform, roms=tuple(roms))
            for platform in platforms
        ]

        log.debug(
            "Parsed JSON signature document",
            source=source_name,
            title=title,
            platforms=platforms,
            roms=len(roms),
        )
        return games

    @staticmethod
    def _load(content: bytes, source_name: str) -> Mapping[str, Any]:
        try:
            document = json.loads(content)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParseError(
                f"Invalid JSON in {source_name or 'signature document'}",
                source=source_name or None,
                line=getattr(e, "lineno", None),
                original_error=e,
            ) from e

        if not isinstance(document, Mapping):
            raise ParseError(
                f"Expected a JSON object in {source_name or 'signature document'}, got {type(document).__name__}",
                source=source_name or None,
            )
        return document

    @staticmethod
    def _platforms(document: Mapping[str, Any]) -> list[str]:
        """Distinct non-empty platforms, first signature's platform first."""
        signatures = _field(document, "SignatureDataObjects")
        if not isinstance(signatures, list):
            return []

        platforms: list[str] = []
        for signature in signatures:
            if not isinstance(signature, Mapping):
                continue
            platform = _text(_field(signature, "Platform")).strip()
            if platform and platform not in platforms:
                platforms.append(platform)
        return platforms

    @staticmethod
    def _roms(document: Mapping[str, Any]) -> list[RomDescriptor]:
        attributes = _field(document, "Attributes")
        if not isinstance(attributes, list):
            return []

        roms: list[RomDescriptor] = []
        for attribute in attributes:
            if not isinstance(attribute, Mapping):
                continue
            if _field(attribute, "AttributeName") != ROMS_ATTRIBUTE:
                continue
            for descriptor in resolve_roms_value(_field(attribute, "Value")):
                rom = rom_from_descriptor(descriptor)
                if rom.has_digest:
                    roms.append(rom)
        return roms
