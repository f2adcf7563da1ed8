"""
Pytest configuration and shared fixtures for dtbparse tests.

SPDX-License-Identifier: BSD-3-Clause
"""

import pytest

import dtbparse
from fdt_builder import Node, build_dtb, minimal_dtb, u32


def board_root():
    """A small but realistic board description."""
    gic = Node("interrupt-controller@f9010000", [
        ("compatible", b"arm,gic-400\x00"),
        ("interrupt-controller", b""),
        ("#interrupt-cells", u32(3)),
        ("reg", u32(0x0, 0xf9010000, 0x0, 0x10000)),
        ("phandle", u32(1)),
        ("linux,phandle", u32(1)),
    ])
    serial = Node("serial@ff000000", [
        ("compatible", b"cdns,uart-r1p12\x00xlnx,xuartps\x00"),
        ("reg", u32(0x0, 0xff000000, 0x0, 0x1000)),
        ("status", b"okay\x00"),
        ("clock-frequency", u32(100000000)),
        ("local-mac-address", b"\x00\x0a\x35\x00\x00\x01"),
    ])
    soc = Node("soc", [
        ("#address-cells", u32(2)),
        ("#size-cells", u32(2)),
        ("ranges", b""),
    ], [gic, serial])

    cpus = Node("cpus", [
        ("#address-cells", u32(1)),
        ("#size-cells", u32(0)),
    ], [
        Node("cpu@0", [
            ("device_type", b"cpu\x00"),
            ("compatible", b"arm,cortex-a53\x00"),
            ("reg", u32(0)),
            ("next-level-cache", u32(2)),
        ]),
        Node("cpu@1", [
            ("device_type", b"cpu\x00"),
            ("compatible", b"arm,cortex-a53\x00"),
            ("reg", u32(1)),
            ("next-level-cache", u32(2)),
        ]),
        Node("l2-cache", [
            ("compatible", b"cache\x00"),
            ("phandle", u32(2)),
        ]),
    ])

    memory = Node("memory@80000000", [
        ("device_type", b"memory\x00"),
        ("reg", u32(0x80000000, 0x40000000)),
    ])

    chosen = Node("chosen", [
        ("bootargs", b"console=ttyPS0,115200\x00"),
    ])

    return Node("", [
        ("compatible", b"acme,board\x00acme,soc\x00"),
        ("model", b"Acme Board\x00"),
        ("#address-cells", u32(1)),
        ("#size-cells", u32(1)),
        ("interrupt-parent", u32(1)),
    ], [cpus, memory, soc, chosen])


BOARD_RESERVATIONS = [(0x80000000, 0x100000), (0x90000000, 0x2000)]


@pytest.fixture
def minimal_blob():
    """The smallest useful blob: a root node with compatible = "foo"."""
    return minimal_dtb()


@pytest.fixture
def board_blob():
    """Blob of the board description, with two memory reservations."""
    return build_dtb(board_root(), reservations=BOARD_RESERVATIONS)


@pytest.fixture
def board_tree(board_blob):
    """The parsed board description."""
    return dtbparse.parse(board_blob)


@pytest.fixture
def board_dtb_file(tmp_path, board_blob):
    """The board blob written to a file."""
    path = tmp_path / "board.dtb"
    path.write_bytes(board_blob)
    return path
