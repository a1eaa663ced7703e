"""Tests for loader framing helpers."""

import pytest

from lualink.agent.protocol import (
    SIZE_HEADER_LEN,
    ascii_dump,
    build_size_header,
    hex_dump,
    is_binary_payload,
    parse_size_header,
)


class TestSizeHeader:
    """Test the 8-byte size header."""

    def test_header_for_64_bytes(self):
        assert build_size_header(64) == bytes([0x40, 0, 0, 0, 0, 0, 0, 0])

    def test_header_is_little_endian(self):
        header = build_size_header(0x01020304)
        assert header[:4] == b"\x04\x03\x02\x01"
        assert header[4:] == b"\x00\x00\x00\x00"

    @pytest.mark.parametrize("length", [0, 1, 255, 65536, 0xFFFFFFFF])
    def test_header_decodes_to_length(self, length):
        header = build_size_header(length)
        assert len(header) == SIZE_HEADER_LEN == 8
        assert int.from_bytes(header[:4], "little") == length
        assert parse_size_header(header) == length

    def test_oversized_payload_rejected(self):
        with pytest.raises(ValueError):
            build_size_header(0x100000000)

    def test_parse_rejects_nonzero_high_word(self):
        with pytest.raises(ValueError):
            parse_size_header(b"\x01\x00\x00\x00\x01\x00\x00\x00")

    def test_parse_rejects_short_header(self):
        with pytest.raises(ValueError):
            parse_size_header(b"\x01\x00")


class TestPayloadKinds:
    """Test binary/framed classification."""

    @pytest.mark.parametrize("name", ["payload.elf", "kernel.bin", "LOADER.elf"])
    def test_binary_names(self, name):
        assert is_binary_payload(name)

    @pytest.mark.parametrize("name", ["umtx.lua", "elf_loader.lua", "bin", "notes.txt", "HOMEBREW.ELF", "kernel.Bin"])
    def test_framed_names(self, name):
        assert not is_binary_payload(name)

    def test_custom_extensions(self):
        assert is_binary_payload("a.self", extensions=[".self"])
        assert not is_binary_payload("a.elf", extensions=[".self"])


class TestDumps:
    """Test hex and ASCII capture formatting."""

    def test_hex_dump_pairs(self):
        assert hex_dump(b"\x01\xab\xff") == "01 ab ff"

    def test_hex_dump_truncated(self):
        dump = hex_dump(bytes(100))
        assert dump.endswith("...")
        assert len(dump) == 103

    def test_ascii_dump_substitutes_non_printable(self):
        assert ascii_dump(b"OK\x00\n\xffdone") == "OK...done"

    def test_ascii_dump_truncated(self):
        dump = ascii_dump(b"A" * 150)
        assert dump == "A" * 100 + "..."
