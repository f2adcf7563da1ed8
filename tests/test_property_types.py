"""
Tests for the property value interpreter.

SPDX-License-Identifier: BSD-3-Clause
"""

import struct

import pytest

import dtbparse
from dtbparse import DtbOptions
from dtbparse.base import DtbValue, dtb_base
from dtbparse.fmt import DtbFmt

from fdt_builder import Node, build_dtb, u32


def guess(name, value, **kwargs):
    return dtb_base.property_value_decode(name, value, **kwargs)


class TestTypeGuess:
    """Test classification without the well known type table."""

    def test_empty(self):
        assert guess("dma-coherent", b"") == DtbValue(DtbFmt.EMPTY, None)

    def test_string(self):
        assert guess("compatible", b"foo\x00") == DtbValue(DtbFmt.STRING, "foo")
        assert guess("bootargs", b"console=ttyS0,115200 root=/dev/mmcblk0p2\x00").kind == DtbFmt.STRING

    def test_empty_string(self):
        assert guess("label", b"\x00") == DtbValue(DtbFmt.STRING, "")

    def test_string_list(self):
        assert guess("compatible", b"acme,board\x00acme,soc\x00") == \
            DtbValue(DtbFmt.MULTI_STRING, ["acme,board", "acme,soc"])

    def test_four_byte_string_beats_uint32(self):
        """A printable 4 byte value with one trailing null is a string."""
        assert guess("name", b"abc\x00") == DtbValue(DtbFmt.STRING, "abc")

    def test_number_that_looks_like_a_letter(self):
        """<0x76000000> starts with "v" but its extra nulls make it a number."""
        assert guess("mem-ctrl-base-address", u32(0x76000000)) == DtbValue(DtbFmt.UINT32, 0x76000000)

    def test_uint32(self):
        assert guess("reg", u32(0)) == DtbValue(DtbFmt.UINT32, 0)
        assert guess("clock-frequency", u32(100000000)) == DtbValue(DtbFmt.UINT32, 100000000)

    def test_uint64(self):
        value = struct.pack(">Q", 0x80000000)
        assert guess("linux,initrd-start", value) == DtbValue(DtbFmt.UINT64, 0x80000000)

    def test_phandle(self):
        assert guess("interrupt-parent", u32(3)) == DtbValue(DtbFmt.PHANDLE, 3)
        assert guess("phandle", u32(0x10)) == DtbValue(DtbFmt.PHANDLE, 0x10)

    def test_phandle_name_beats_string(self):
        """A phandle carrying name wins over a printable value."""
        assert guess("interrupt-parent", b"ABC\x00") == DtbValue(DtbFmt.PHANDLE, 0x41424300)

    def test_phandle_list_is_not_a_phandle(self):
        assert guess("clocks", u32(1, 2)).kind == DtbFmt.UINT64

    def test_bytes(self):
        assert guess("local-mac-address", b"\x00\x0a\x35\x00\x00\x01") == \
            DtbValue(DtbFmt.BYTES, b"\x00\x0a\x35\x00\x00\x01")
        assert guess("reg", u32(1, 2, 3)).kind == DtbFmt.BYTES

    def test_no_terminator_is_bytes(self):
        assert guess("model", b"abcd").kind == DtbFmt.UINT32
        assert guess("model", b"abcde").kind == DtbFmt.BYTES

    def test_unprintable_is_not_a_string(self):
        assert guess("model", b"a\x01b\x00").kind == DtbFmt.UINT32
        assert guess("model", b"ab\x01cd\x00").kind == DtbFmt.BYTES

    def test_empty_run_is_not_a_string_list(self):
        assert guess("model", b"a\x00\x00b\x00").kind == DtbFmt.BYTES

    def test_memoryview_input(self):
        view = memoryview(b"xxfoo\x00")[2:]
        assert guess("compatible", view) == DtbValue(DtbFmt.STRING, "foo")

    def test_type_guess(self):
        assert dtb_base.property_type_guess("status", b"okay\x00") == DtbFmt.STRING
        assert dtb_base.property_type_guess("reg", u32(1)) == DtbFmt.UINT32


class TestKnownTypes:
    """Test the optional well known type table."""

    def test_lookup(self):
        assert dtb_base.property_get_known_type("compatible") == DtbFmt.MULTI_STRING
        assert dtb_base.property_get_known_type("#clock-cells") == DtbFmt.UINT32
        assert dtb_base.property_get_known_type("clock-names") == DtbFmt.MULTI_STRING
        assert dtb_base.property_get_known_type("acme,widget") is None

    def test_table_is_optional(self):
        assert guess("compatible", b"foo\x00").kind == DtbFmt.STRING
        assert guess("compatible", b"foo\x00", known_types=True) == \
            DtbValue(DtbFmt.MULTI_STRING, ["foo"])

    def test_cell_array(self):
        assert guess("reg", u32(0, 0x1000, 0, 0x100), known_types=True) == \
            DtbValue(DtbFmt.UINT32, [0, 0x1000, 0, 0x100])

    def test_mismatch_falls_back_to_sniffing(self):
        """A table entry that does not fit the bytes is ignored."""
        assert guess("model", u32(5), known_types=True) == DtbValue(DtbFmt.UINT32, 5)
        assert guess("dma-coherent", u32(1), known_types=True).kind == DtbFmt.UINT32

    def test_tree_option(self):
        root = Node("", [("compatible", b"foo\x00")])
        tree = dtbparse.parse(build_dtb(root), DtbOptions(known_types=True))
        assert tree.root.propval("compatible") == DtbValue(DtbFmt.MULTI_STRING, ["foo"])


class TestForcedType:
    """Test decoding with an explicit type."""

    def test_forced(self):
        assert guess("x", u32(7), ftype=DtbFmt.UINT32) == DtbValue(DtbFmt.UINT32, 7)
        assert guess("x", u32(7), ftype=DtbFmt.PHANDLE) == DtbValue(DtbFmt.PHANDLE, 7)
        assert guess("x", b"a\x00b\x00", ftype=DtbFmt.MULTI_STRING) == \
            DtbValue(DtbFmt.MULTI_STRING, ["a", "b"])

    def test_forced_mismatch_is_bytes(self):
        assert guess("x", u32(7), ftype=DtbFmt.UINT64) == DtbValue(DtbFmt.BYTES, u32(7))
        assert guess("x", b"a\x00b\x00", ftype=DtbFmt.STRING).kind == DtbFmt.BYTES
        assert guess("x", b"a", ftype=DtbFmt.EMPTY).kind == DtbFmt.BYTES


class TestHelpers:

    @pytest.mark.parametrize("value,expected", [
        (b"", False),
        (b"\x00", True),
        (b"foo\x00", True),
        (b"foo\x00bar\x00", True),
        (b"foo", False),
        (b"\x00foo\x00", False),
        (b"\xe2\x80\x9c\x00", False),
    ])
    def test_string_test(self, value, expected):
        assert dtb_base.string_test(value) == expected

    def test_cells(self):
        assert dtb_base.property_cells(u32(1, 2, 3)) == [1, 2, 3]
        assert dtb_base.property_cells(u32(1) + b"\x02") == [1]
        assert dtb_base.property_cells(b"") == []
