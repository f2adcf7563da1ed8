#/*
# * Copyright (c) 2019,2020 Xilinx Inc. All rights reserved.
# *
# * Author:
# *       Bruce Ashfield <bruce.ashfield@xilinx.com>
# *
# * SPDX-License-Identifier: BSD-3-Clause
# */

import logging
import struct
from collections import namedtuple
from enum import Enum

from dtbparse.errors import BadMagic, UnsupportedVersion, Truncated, UnexpectedEnd
from dtbparse.errors import OffsetOutOfRange, UnterminatedString, UnknownToken, UnexpectedToken
from dtbparse.log import _info, _debug, _error

# FDT magic number
FDT_MAGIC = 0xd00dfeed

# the oldest version whose layout we can read, and the newest we know
FDT_FIRST_SUPPORTED_VERSION = 16
FDT_LAST_SUPPORTED_VERSION = 17

# magic, totalsize, off_dt_struct, off_dt_strings, off_mem_rsvmap,
# version, last_comp_version, boot_cpuid_phys, size_dt_strings,
# size_dt_struct
FDT_HEADER_FORMAT = ">IIIIIIIIII"
FDT_HEADER_SIZE = struct.calcsize( FDT_HEADER_FORMAT )

FDT_TAGSIZE = 4
FDT_RESERVE_ENTRY_SIZE = 16

logger = logging.getLogger( __name__ )

class FdtTokenKind(Enum):
    """Enum class for the structure block token tags
    """
    BEGIN_NODE = 0x1
    END_NODE = 0x2
    PROP = 0x3
    NOP = 0x4
    END = 0x9

# one structure block token. 'offset' is the absolute offset of the tag,
# 'name' is set for BEGIN_NODE, 'name_offset' and 'value' for PROP.
FdtToken = namedtuple( "FdtToken", [ "kind", "offset", "name", "name_offset", "value" ] )
FdtToken.__new__.__defaults__ = ( None, None, None )

FdtReservation = namedtuple( "FdtReservation", [ "address", "size" ] )


class FdtCursor:
    """A bounds checked reader over a region of a byte buffer

    The cursor never copies: slices are returned as memoryviews of the
    buffer it was created on. Positions are absolute offsets into that
    buffer, so they can be reported directly in errors.

    Attributes:
       - blob: the buffer being read
       - start: first readable offset
       - end: one past the last readable offset
       - position: the current absolute offset
    """
    def __init__( self, blob, start = 0, end = None ):
        if end is None:
            end = len(blob)

        self.blob = blob
        self.start = start
        self.end = end
        self.position = start

    def remaining( self ):
        """the number of bytes left before the end of the region"""
        return self.end - self.position

    def _need( self, count ):
        if self.remaining() < count:
            raise UnexpectedEnd( f"need {count} bytes, only {self.remaining()} remain",
                                 self.position )

    def read_u32( self ):
        """read a big endian uint32 and advance past it"""
        self._need( 4 )
        val = struct.unpack_from( ">I", self.blob, self.position )[0]
        self.position += 4
        return val

    def read_u64( self ):
        """read a big endian uint64 and advance past it"""
        self._need( 8 )
        val = struct.unpack_from( ">Q", self.blob, self.position )[0]
        self.position += 8
        return val

    def slice( self, length ):
        """return a view of the next 'length' bytes and advance past them"""
        self._need( length )
        view = memoryview( self.blob )[self.position:self.position + length]
        self.position += length
        return view

    def find( self, sub ):
        """absolute offset of the next occurrence of 'sub' within the region, -1 if none"""
        return self.blob.find( sub, self.position, self.end )

    def align_to( self, alignment ):
        """advance to the next multiple of 'alignment' (relative to the region start)

        Raises:
           Truncated: if the aligned position is past the end of the region
        """
        rel = self.position - self.start
        aligned = self.start + ((rel + alignment - 1) // alignment) * alignment
        if aligned > self.end:
            raise Truncated( f"aligning to {alignment} runs past the end of the region",
                             self.position )
        self.position = aligned


class FdtHeader:
    """The fixed header at the start of every device tree blob

    Attributes:
       - magic, total_size, struct_offset, strings_offset, mem_rsvmap_offset,
         version, last_comp_version, boot_cpuid_phys, strings_size,
         struct_size: the header fields, in blob order

    The struct_size of a version 16 blob is derived from the block layout,
    since that version does not carry size_dt_struct.
    """
    fields = ( "magic", "total_size", "struct_offset", "strings_offset",
               "mem_rsvmap_offset", "version", "last_comp_version",
               "boot_cpuid_phys", "strings_size", "struct_size" )

    def __init__( self, *values ):
        for name, val in zip( FdtHeader.fields, values ):
            self.__dict__[name] = val

    def __setattr__( self, name, value ):
        raise AttributeError( "FdtHeader is read only" )

    def __repr__( self ):
        return "FdtHeader(" + ", ".join( f"{f}={v:#x}" for f, v in self.items() ) + ")"

    def items( self ):
        """the (field name, value) pairs of the header, in blob order"""
        return [ (f, getattr( self, f )) for f in FdtHeader.fields ]

    @staticmethod
    def from_bytes( blob, strict_version = False, logger = logger ):
        """Decode and validate the header of a blob

        Args:
           blob (bytes): the complete device tree blob
           strict_version (bool,optional): only accept version 17
           logger (Logger,optional): diagnostic sink

        Returns:
           FdtHeader: the validated header

        Raises:
           BadMagic, Truncated, UnsupportedVersion, OffsetOutOfRange
        """
        cursor = FdtCursor( blob )
        if cursor.remaining() >= 4:
            magic = cursor.read_u32()
            if magic != FDT_MAGIC:
                _error( f"bad magic {magic:#010x}, expected {FDT_MAGIC:#010x}", logger=logger )
                raise BadMagic( f"magic is {magic:#010x}, expected {FDT_MAGIC:#010x}", 0 )

        if len(blob) < FDT_HEADER_SIZE:
            _error( f"blob of {len(blob)} bytes is too small for a header", logger=logger )
            raise Truncated( f"blob is {len(blob)} bytes, the header needs {FDT_HEADER_SIZE}", 0 )

        values = list( struct.unpack_from( FDT_HEADER_FORMAT, blob, 0 ) )
        ( magic, total_size, struct_offset, strings_offset, mem_rsvmap_offset,
          version, last_comp_version, boot_cpuid_phys, strings_size, struct_size ) = values

        if total_size > len(blob):
            _error( f"totalsize {total_size} is larger than the {len(blob)} byte blob", logger=logger )
            raise Truncated( f"totalsize is {total_size}, but the blob is {len(blob)} bytes", 4 )

        if total_size < FDT_HEADER_SIZE:
            _error( f"totalsize {total_size} cannot hold a header", logger=logger )
            raise OffsetOutOfRange( f"totalsize {total_size} is smaller than the header", 4 )

        if version < FDT_FIRST_SUPPORTED_VERSION or last_comp_version > version or \
           (strict_version and version != FDT_LAST_SUPPORTED_VERSION):
            _error( f"unsupported version {version} (last compatible {last_comp_version})",
                    logger=logger )
            raise UnsupportedVersion( f"version {version}, last compatible version {last_comp_version}", 20 )

        if version < 17:
            # no size_dt_struct, the block runs up to whatever follows it
            following = [ o for o in (strings_offset, mem_rsvmap_offset) if o > struct_offset ]
            struct_end = min( following ) if following else total_size
            struct_size = max( 0, struct_end - struct_offset )
            values[9] = struct_size

        blocks = ( ("off_mem_rsvmap", mem_rsvmap_offset, FDT_RESERVE_ENTRY_SIZE, 16),
                   ("off_dt_struct", struct_offset, struct_size, 8),
                   ("off_dt_strings", strings_offset, strings_size, 12) )
        for name, offset, size, field_offset in blocks:
            if offset < FDT_HEADER_SIZE or offset % 4:
                _error( f"{name} {offset:#x} is misplaced", logger=logger )
                raise OffsetOutOfRange( f"{name} {offset:#x} overlaps the header or is not 4 byte aligned",
                                        field_offset )
            if offset > total_size or offset + size > total_size:
                _error( f"{name} {offset:#x} (+{size:#x}) is beyond totalsize {total_size:#x}",
                        logger=logger )
                raise OffsetOutOfRange( f"{name} {offset:#x} with size {size:#x} is outside totalsize {total_size:#x}",
                                        field_offset )

        header = FdtHeader( *values )
        _info( f"valid header: version {version}, totalsize {total_size:#x}", logger=logger )

        return header


class FdtReservationMap:
    """The memory reservation block

    Iterating yields FdtReservation entries until the (0,0) terminator.
    Entries are read on demand and every iteration starts from the top of
    the block again.

    Raises (while iterating):
       Truncated: if the block ends before the terminator
    """
    def __init__( self, blob, start, end, logger = logger ):
        self.blob = blob
        self.start = start
        self.end = end
        self.logger = logger

    def __iter__( self ):
        cursor = FdtCursor( self.blob, self.start, self.end )
        while True:
            if cursor.remaining() < FDT_RESERVE_ENTRY_SIZE:
                _error( "memory reservation block has no terminator", logger=self.logger )
                raise Truncated( "memory reservation block ends before the (0,0) entry",
                                 cursor.position )

            entry = FdtReservation( cursor.read_u64(), cursor.read_u64() )
            if entry.address == 0 and entry.size == 0:
                return

            _debug( f"memory reservation: {entry.address:#x} size {entry.size:#x}", logger=self.logger )
            yield entry

    def entries( self ):
        """all reservations as a list"""
        return list( self )


class FdtStrings:
    """A read only view over the strings block

    Property names are referenced by their byte offset into this block.
    """
    def __init__( self, blob, start = 0, size = None ):
        if size is None:
            size = len(blob) - start

        self.blob = blob
        self.start = start
        self.size = size

    def __len__( self ):
        return self.size

    @property
    def data( self ):
        """a memoryview of the strings block"""
        return memoryview( self.blob )[self.start:self.start + self.size]

    def resolve( self, offset ):
        """Return the null terminated string at 'offset'

        Args:
           offset (int): byte offset into the strings block

        Returns:
           string: the name found at the offset. Bytes that are not utf-8
                   are kept as surrogate escapes, so names never collide

        Raises:
           OffsetOutOfRange: the offset is past the end of the block
           UnterminatedString: no null byte before the end of the block
        """
        if offset < 0 or offset > self.size:
            raise OffsetOutOfRange( f"string offset {offset:#x} is outside the {self.size:#x} byte strings block",
                                    self.start + max( offset, 0 ) )

        begin = self.start + offset
        nul = self.blob.find( b"\x00", begin, self.start + self.size )
        if nul < 0:
            raise UnterminatedString( f"string at offset {offset:#x} has no terminator", begin )

        return bytes( self.blob[begin:nul] ).decode( "utf-8", errors="surrogateescape" )


class FdtTokenizer:
    """Pull based reader of the structure block, one token at a time

    The tokenizer only validates token framing (tags, lengths, alignment
    and bounds). Nesting is checked by whoever consumes the tokens.

    Iterating yields every token up to and including FDT_END.
    """
    def __init__( self, blob, start, size, logger = logger ):
        self.cursor = FdtCursor( blob, start, start + size )
        self.logger = logger
        self.done = False

    def __iter__( self ):
        while not self.done:
            yield self.next_token()

    def _truncated( self, message, offset ):
        _error( message, logger=self.logger )
        return Truncated( message, offset )

    def next_token( self ):
        """Read the next token

        Returns:
           FdtToken: the token

        Raises:
           UnexpectedToken: a read was requested after FDT_END
           UnknownToken: the tag is not a known token
           Truncated: the token or its payload overruns the structure block
        """
        c = self.cursor
        offset = c.position

        if self.done:
            _error( "token requested after FDT_END", logger=self.logger )
            raise UnexpectedToken( "read past FDT_END", offset )

        if c.remaining() < FDT_TAGSIZE:
            raise self._truncated( "structure block ends without FDT_END", offset )

        tag = c.read_u32()
        try:
            kind = FdtTokenKind( tag )
        except ValueError:
            _error( f"unknown token {tag:#x} at {offset:#x}", logger=self.logger )
            raise UnknownToken( f"unknown token tag {tag:#x}", offset )

        if kind == FdtTokenKind.BEGIN_NODE:
            nul = c.find( b"\x00" )
            if nul < 0:
                raise self._truncated( "node name runs past the end of the structure block", c.position )
            name = c.slice( nul - c.position + 1 )[:-1]
            c.align_to( FDT_TAGSIZE )
            return FdtToken( kind, offset, name=name.tobytes().decode( "utf-8", errors="surrogateescape" ) )

        if kind == FdtTokenKind.PROP:
            if c.remaining() < 8:
                raise self._truncated( "property header overruns the structure block", c.position )
            length = c.read_u32()
            name_offset = c.read_u32()
            if length > c.remaining():
                raise self._truncated( f"property value of {length} bytes overruns the structure block",
                                       c.position )
            value = c.slice( length )
            c.align_to( FDT_TAGSIZE )
            return FdtToken( kind, offset, name_offset=name_offset, value=value )

        if kind == FdtTokenKind.END:
            self.done = True

        return FdtToken( kind, offset )


class DtbBlob:
    """A validated device tree blob, split into its blocks

    Nothing is copied: the blocks are views of the buffer passed in
    (buffers other than bytes/bytearray are copied once into bytes).

    Attributes:
       - blob: the input buffer
       - header: the FdtHeader
       - reservations: FdtReservationMap over the memory reservation block
       - strings: FdtStrings over the strings block
    """
    def __init__( self, blob, strict_version = False, logger = logger ):
        if not isinstance( blob, (bytes, bytearray) ):
            blob = bytes( blob )

        self.blob = blob
        self.logger = logger
        self.header = FdtHeader.from_bytes( blob, strict_version, logger )

        h = self.header
        following = [ o for o in (h.struct_offset, h.strings_offset) if o > h.mem_rsvmap_offset ]
        rsv_end = min( following ) if following else h.total_size

        self.reservations = FdtReservationMap( blob, h.mem_rsvmap_offset, rsv_end, logger )
        self.strings = FdtStrings( blob, h.strings_offset, h.strings_size )

    @property
    def struct_block( self ):
        h = self.header
        return memoryview( self.blob )[h.struct_offset:h.struct_offset + h.struct_size]

    @property
    def strings_block( self ):
        return self.strings.data

    @property
    def reservation_block( self ):
        return memoryview( self.blob )[self.reservations.start:self.reservations.end]

    def tokens( self ):
        """a new FdtTokenizer positioned at the start of the structure block"""
        h = self.header
        return FdtTokenizer( self.blob, h.struct_offset, h.struct_size, self.logger )
