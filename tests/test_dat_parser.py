"""Tests for the DAT signature parser."""

import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest
from hypothesis import given, strategies as st

from romnibus.models import GameRecord, GrammarProfile
from romnibus.services.dat_parser import DatSignatureParser
from romnibus.services.errors import FileOpenError, ParseError
from romnibus.services.signature_parser import platform_from_filename

DIGEST = "DEADBEEF" * 5
SUPER_GAME = f'game ( name "Super Game" rom ( name game.bin sha1 {DIGEST} ) )'.encode()

hex_digests = st.text(alphabet="0123456789abcdefABCDEF", min_size=40, max_size=40)


class TestPlatformFromFilename:

    @pytest.mark.parametrize(
        ("filename", "expected"),
        [
            ("Nintendo - Game Boy (20240101-000000).dat", "Nintendo - Game Boy"),
            ("Sega - Mega Drive.dat", "Sega - Mega Drive"),
            ("  Atari - 2600 .json", "Atari - 2600"),
            ("(odd).dat", ""),
        ],
    )
    def test_platform_from_filename(self, filename: str, expected: str) -> None:
        assert platform_from_filename(filename) == expected


class TestDatSignatureParser:

    def test_super_game_example(self) -> None:
        records = DatSignatureParser().parse(SUPER_GAME, "Nintendo - Game Boy")

        assert records == [
            GameRecord(
                name="Super Game",
                filename="game.bin",
                platform="Nintendo - Game Boy",
                hash="deadbeef" * 5,
            )
        ]

    def test_quoted_rom_name_gives_empty_filename(self) -> None:
        content = f'game ( name "Super Game" rom ( name "game.bin" sha1 {DIGEST} ) )'.encode()

        records = DatSignatureParser().parse(content, "Platform")

        assert len(records) == 1
        assert records[0].filename == ""
        assert records[0].hash == DIGEST.lower()

    def test_first_rom_with_valid_digest_wins(self) -> None:
        content = (
            "game ( name Multi "
            "rom ( name track1.bin sha1 nothex ) "
            f"rom ( name track2.bin sha1 {'a' * 40} ) "
            f"rom ( name track3.bin sha1 {'b' * 40} ) )"
        ).encode()

        records = DatSignatureParser().parse(content, "Platform")

        assert [(r.filename, r.hash) for r in records] == [("track2.bin", "a" * 40)]

    @pytest.mark.parametrize(
        "block",
        [
            f"game ( rom ( name a.bin sha1 {'a' * 40} ) )",
            'game ( name "" rom ( name a.bin sha1 ' + "a" * 40 + " ) )",
            "game ( name NoDigest rom ( name a.bin size 10 ) )",
            "game ( name ShortDigest rom ( name a.bin sha1 abc123 ) )",
            f"game ( name LongDigest rom ( name a.bin sha1 {'a' * 41} ) )",
            f"game ( name NoRomName rom ( sha1 {'a' * 40} ) )",
        ],
    )
    def test_unusable_blocks_yield_nothing(self, block: str) -> None:
        content = f"{block}\ngame ( name Good rom ( name good.bin sha1 {'c' * 40} ) )".encode()

        records = DatSignatureParser().parse(content, "Platform")

        assert [r.name for r in records] == ["Good"]

    def test_name_profile_drops_filename(self) -> None:
        parser = DatSignatureParser(GrammarProfile.NAME)

        records = parser.parse(SUPER_GAME, "Platform")

        assert records == [
            GameRecord(name="Super Game", filename="", platform="Platform", hash="deadbeef" * 5)
        ]

    def test_name_profile_accepts_rom_without_name(self) -> None:
        content = f"game ( name Anonymous rom ( sha1 {'a' * 40} ) )".encode()

        records = DatSignatureParser(GrammarProfile.NAME).parse(content, "Platform")

        assert [r.name for r in records] == ["Anonymous"]

    def test_header_name_is_platform_fallback(self) -> None:
        content = (
            'clrmamepro ( name "Nintendo - Game Boy" version 20240101 )\n'
        ).encode() + SUPER_GAME

        parser = DatSignatureParser()
        records = parser.parse(content, "")

        assert records[0].platform == "Nintendo - Game Boy"

    def test_reused_parser_does_not_carry_header(self) -> None:
        parser = DatSignatureParser()
        parser.parse(b'clrmamepro ( name "Nintendo - Game Boy" )\n' + SUPER_GAME, "")

        records = parser.parse(SUPER_GAME, "", source_name="(2024-01-01).dat")

        assert records[0].platform == "(2024-01-01)"

    def test_game_without_any_platform_is_skipped(self) -> None:
        with patch("romnibus.services.signature_parser.log") as mock_logger:
            records = DatSignatureParser().parse(SUPER_GAME, "")

        assert records == []
        mock_logger.warning.assert_called_once()

    def test_platform_hint_wins_over_header(self) -> None:
        content = b'clrmamepro ( name "Header Name" )\n' + SUPER_GAME

        records = DatSignatureParser().parse(content, "From Filename")

        assert records[0].platform == "From Filename"

    def test_truncated_last_block_keeps_earlier_games(self) -> None:
        content = SUPER_GAME + f"\ngame ( name Cut rom ( name cut.bin sha1 {'a' * 40}".encode()

        with patch("romnibus.services.dat_parser.log") as mock_logger:
            records = DatSignatureParser().parse(content, "Platform", source_name="partial.dat")

        assert [r.name for r in records] == ["Super Game"]
        assert mock_logger.warning.called

    def test_damaged_file_without_games_raises(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            DatSignatureParser().parse(b'game ( name "Broken', "Platform", source_name="broken.dat")

        assert exc_info.value.source == "broken.dat"

    def test_clean_file_without_games_returns_empty(self) -> None:
        assert DatSignatureParser().parse(b'clrmamepro ( name "Empty" )', "Platform") == []

    def test_invalid_utf8_is_tolerated(self) -> None:
        content = b'game ( name "Caf\xe9" rom ( name cafe.bin sha1 ' + b"a" * 40 + b" ) )"

        records = DatSignatureParser().parse(content, "Platform")

        assert len(records) == 1
        assert records[0].name.startswith("Caf")

    @given(digest=hex_digests)
    def test_hash_is_always_lowercase(self, digest: str) -> None:
        content = f"game ( name G rom ( name g.bin sha1 {digest} ) )".encode()

        records = DatSignatureParser().parse(content, "Platform")

        assert records[0].hash == digest.lower()


class TestParseFile:

    def test_platform_from_file_name(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "Nintendo - Game Boy (20240101-000000).dat"
            path.write_bytes(SUPER_GAME)

            records = DatSignatureParser().parse_file(path)

        assert records[0].platform == "Nintendo - Game Boy"

    def test_missing_file_raises_file_open_error(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            with pytest.raises(FileOpenError):
                DatSignatureParser().parse_file(Path(temp_dir) / "missing.dat")
