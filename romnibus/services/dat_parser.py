"""Parser for clrmamepro-style DAT signature files."""

import re

import structlog

from ..models import GrammarProfile, RomDescriptor, SignatureGame
from .dat_grammar import Clause, ClauseList, parse_clauses
from .errors import ParseError
from .signature_parser import SignatureParser

log = structlog.stdlib.get_logger()

SHA1_PATTERN = re.compile(r"[0-9a-fA-F]{40}")


class DatSignatureParser(SignatureParser):
    """Reads ``game ( name ... rom ( name ... sha1 ... ) )`` blocks.

    Each game block yields at most one game, taken from the first ``rom``
    clause that carries a well-formed SHA-1. Under the FILENAME profile that
    clause must also declare a ``name``; a name written as a quoted string
    is treated as unreliable and stored as an empty filename.
    """

    extensions = (".dat",)

    def _extract_games(self, content: bytes, platform_hint: str, source_name: str) -> list[SignatureGame]:
        text = content.decode("utf-8", errors="replace")
        result = parse_clauses(text)

        platform = platform_hint.strip() or self._read_header_name(result.clauses)

        games: list[SignatureGame] = []
        skipped = 0
        for clause in result.clauses.all("game"):
            game = self._read_game(clause, platform)
            if game is None:
                skipped += 1
                continue
            games.append(game)

        if result.issues:
            first = result.issues[0]
            if not games:
                raise ParseError(
                    f"No usable game blocks in {source_name or 'DAT content'}: {first.message}",
                    source=source_name or None,
                    line=first.line,
                )
            log.warning(
                "DAT file has structural problems, keeping parsed blocks",
                source=source_name,
                issues=len(result.issues),
                first_issue=first.message,
                first_issue_line=first.line,
            )

        log.debug(
            "Parsed DAT content",
            source=source_name,
            platform=platform,
            games=len(games),
            skipped_blocks=skipped,
        )
        return games

    @staticmethod
    def _read_header_name(document: ClauseList) -> str:
        header = document.first("clrmamepro")
        if header is None or not isinstance(header.value, ClauseList):
            return ""
        name = header.value.first("name")
        if name is None or name.atom is None:
            return ""
        return name.atom.text.strip()

    def _read_game(self, game: Clause, platform: str) -> SignatureGame | None:
        if not game.complete or not isinstance(game.value, ClauseList):
            log.debug("Skipping incomplete game block", line=game.line)
            return None

        name_clause = game.value.first("name")
        if name_clause is None or name_clause.atom is None or not name_clause.atom.text.strip():
            log.debug("Skipping game block without a name", line=game.line)
            return None
        name = name_clause.atom.text

        for rom in game.value.all("rom"):
            if not rom.complete or not isinstance(rom.value, ClauseList):
                continue

            sha1_clause = rom.value.first("sha1")
            if sha1_clause is None or sha1_clause.atom is None:
                continue
            digest = sha1_clause.atom.text
            if not SHA1_PATTERN.fullmatch(digest):
                continue

            filename = ""
            rom_name = rom.value.first("name")
            if self.profile is GrammarProfile.FILENAME:
                if rom_name is None or rom_name.atom is None:
                    continue
                filename = self._filename_from(rom_name)

            return SignatureGame(
                name=name,
                filename=filename,
                platform=platform,
                roms=(RomDescriptor(name=filename, sha1=digest.lower()),),
            )

        log.debug("Skipping game block without a usable rom clause", game=name, line=game.line)
        return None

    @staticmethod
    def _filename_from(clause: Clause) -> str:
        token = clause.atom
        if token is None or token.quoted:
            # Quoted filenames are not trusted; keep the record for name/hash lookups only
            return ""
        return token.text
