"""
Test helpers to assemble device tree blobs byte by byte.

dtbparse has no writer, so tests build their input here. build_dtb()
lays a blob out the way dtc does: header, memory reservation block,
structure block, strings block. The token helpers make it easy to
build deliberately broken structure blocks.

SPDX-License-Identifier: BSD-3-Clause
"""

import struct

FDT_MAGIC = 0xd00dfeed
FDT_BEGIN_NODE = 1
FDT_END_NODE = 2
FDT_PROP = 3
FDT_NOP = 4
FDT_END = 9

HEADER_SIZE = 40


def align4(data):
    """Pad a bytes object with nulls to a multiple of 4."""
    return data + b"\x00" * ((4 - len(data) % 4) % 4)


def u32(*vals):
    return struct.pack(">%dI" % len(vals), *vals)


def begin_node(name):
    if isinstance(name, str):
        name = name.encode()
    return u32(FDT_BEGIN_NODE) + align4(name + b"\x00")


def end_node():
    return u32(FDT_END_NODE)


def nop():
    return u32(FDT_NOP)


def end():
    return u32(FDT_END)


def prop(name_offset, value, length=None):
    """An FDT_PROP token. 'length' overrides the declared value length."""
    if length is None:
        length = len(value)
    return u32(FDT_PROP, length, name_offset) + align4(value)


class Strings:
    """Collects property names into a strings block."""

    def __init__(self):
        self.data = bytearray()
        self.offsets = {}

    def offset(self, name):
        if name not in self.offsets:
            self.offsets[name] = len(self.data)
            self.data.extend(name.encode() + b"\x00")
        return self.offsets[name]


def assemble(struct_block, strings_block=b"", reservations=(), version=17,
             last_comp_version=16, magic=FDT_MAGIC, boot_cpuid_phys=0,
             total_size=None, struct_size=None):
    """Lay out a complete blob from already encoded blocks."""
    rsv = b"".join(struct.pack(">QQ", a, s) for a, s in reservations)
    rsv += struct.pack(">QQ", 0, 0)

    off_mem_rsvmap = HEADER_SIZE
    off_dt_struct = off_mem_rsvmap + len(rsv)
    off_dt_strings = off_dt_struct + len(struct_block)
    size = off_dt_strings + len(strings_block)

    header = u32(
        magic,
        size if total_size is None else total_size,
        off_dt_struct,
        off_dt_strings,
        off_mem_rsvmap,
        version,
        last_comp_version,
        boot_cpuid_phys,
        len(strings_block),
        len(struct_block) if struct_size is None else struct_size,
    )

    return header + rsv + bytes(struct_block) + bytes(strings_block)


class Node:
    """A node description: name, (name, value) properties and children."""

    def __init__(self, name, props=(), children=()):
        self.name = name
        self.props = list(props)
        self.children = list(children)


def build_dtb(root, reservations=(), **kwargs):
    """Build a blob from a Node hierarchy."""
    strings = Strings()
    body = bytearray()

    def emit(node):
        body.extend(begin_node(node.name))
        for name, value in node.props:
            body.extend(prop(strings.offset(name), value))
        for child in node.children:
            emit(child)
        body.extend(end_node())

    emit(root)
    body.extend(end())

    return assemble(bytes(body), bytes(strings.data), reservations, **kwargs)


def minimal_dtb(**kwargs):
    """One root node with compatible = "foo"."""
    body = begin_node("") + prop(0, b"foo\x00") + end_node() + end()
    return assemble(body, b"compatible\x00", **kwargs)
