#/*
# * Copyright (c) 2021 Xilinx Inc. All rights reserved.
# *
# * Author:
# *       Bruce Ashfield <bruce.ashfield@xilinx.com>
# *
# * SPDX-License-Identifier: BSD-3-Clause
# */

import struct
from collections import namedtuple
from string import printable

from dtbparse.fmt import DtbFmt

# an interpreted property value. 'value' is None (EMPTY), an int (UINT32,
# UINT64, PHANDLE), a string (STRING), a list of strings (MULTI_STRING),
# bytes (BYTES), or a list of ints for a multi cell UINT32 type hint.
DtbValue = namedtuple( "DtbValue", [ "kind", "value" ] )

printable_bytes = frozenset( printable.encode() )

# Well known property types. This is only consulted when asked for, the
# blob itself carries no types, so this is never authoritative.
dtb_known_types = {
    'exact': {
        'compatible': DtbFmt.MULTI_STRING,
        'model': DtbFmt.STRING,
        'status': DtbFmt.STRING,
        'device_type': DtbFmt.STRING,
        'name': DtbFmt.STRING,
        'label': DtbFmt.STRING,
        'bootargs': DtbFmt.STRING,
        'stdout-path': DtbFmt.STRING,

        'phandle': DtbFmt.PHANDLE,
        'linux,phandle': DtbFmt.PHANDLE,
        'interrupt-parent': DtbFmt.PHANDLE,

        'reg': DtbFmt.UINT32,
        'ranges': DtbFmt.UINT32,
        'dma-ranges': DtbFmt.UINT32,
        'virtual-reg': DtbFmt.UINT32,
        'interrupts': DtbFmt.UINT32,
        'clock-frequency': DtbFmt.UINT32,
        'timebase-frequency': DtbFmt.UINT32,

        'dma-coherent': DtbFmt.EMPTY,
        'interrupt-controller': DtbFmt.EMPTY,
        'no-map': DtbFmt.EMPTY,
        'reusable': DtbFmt.EMPTY,

        'local-mac-address': DtbFmt.BYTES,
        'mac-address': DtbFmt.BYTES,
    },
    'suffixes': {
        '-names': DtbFmt.MULTI_STRING,
        '-cells': DtbFmt.UINT32,
        '-gpios': DtbFmt.UINT32,
    },
    'prefixes': {
        '#': DtbFmt.UINT32,
    },
}

class dtb_base:
    """Class holding the property value interpreter

    A flattened device tree carries no type information for property
    values. These routines make a best effort guess from the property
    name and the bytes themselves, and always fall back to BYTES.

    This class implements:
       - property_type_guess
       - property_value_decode
       - property_get_known_type
       - phandle_possible_properties
       - string_test
       - string_runs
       - property_cells

    Attributes:
       - phandle_possible_prop_dict: class variable holding the properties
                                     whose first cell is a phandle
    """

    phandle_possible_prop_dict = {
        "phandle" : [ 'phandle' ],
        "linux,phandle" : [ 'phandle' ],
        "interrupt-parent" : [ 'phandle' ],
        "interrupts-extended" : [ 'phandle field field' ],
        "iommus" : [ 'phandle field' ],
        "clocks" : [ 'phandle:#clock-cells' ],
        "assigned-clocks" : [ 'phandle:#clock-cells' ],
        "resets" : [ 'phandle field' ],
        "reset-gpios" : [ 'phandle field field' ],
        "power-domains" : [ 'phandle field' ],
        "cpu-idle-states" : [ 'phandle' ],
        "operating-points-v2" : [ 'phandle' ],
        "next-level-cache" : [ 'phandle' ],
        "interrupt-affinity" : [ 'phandle' ],
        "memory-region" : [ 'phandle' ],
        "fpga-mgr" : [ 'phandle' ],
    }

    @classmethod
    def phandle_possible_properties( cls ):
        """Get the dictionary of properties that can contain phandles

        Each key (property name) maps to a list holding a format string
        that describes the cells of the value. Only the leading "phandle"
        field is used here.

        Returns:
            The phandle property dictionary
        """
        return cls.phandle_possible_prop_dict

    @staticmethod
    def string_runs( prop ):
        """Split a property into its null terminated strings

        Args:
           prop (bytes): the raw property value

        Returns:
           list: the decoded strings, or None if the value is not made up
                 only of printable, null terminated strings. An empty run
                 is only accepted when it is the whole value (b"\\x00").
        """
        if not len( prop ) or prop[-1] != 0:
            return None

        if len( prop ) == 1:
            return [ "" ]

        runs = bytes( prop[:-1] ).split( b"\x00" )
        for r in runs:
            if not r:
                return None
            for b in r:
                if b not in printable_bytes:
                    return None

        return [ r.decode( "ascii" ) for r in runs ]

    @staticmethod
    def string_test( prop ):
        """ Check if a property (byte array) is one or more strings

        Args:
           prop (bytes): the raw property value

        Returns:
           boolean: True if the property looks like a string
        """
        return dtb_base.string_runs( prop ) is not None

    @staticmethod
    def property_cells( prop ):
        """Decode a property as big endian uint32 cells

        Trailing bytes that do not make a full cell are ignored.
        """
        count = len( prop ) // 4
        return list( struct.unpack_from( f">{count}I", prop, 0 ) )

    @staticmethod
    def property_get_known_type( property_name ):
        """
        Look up a property name in the well known property table

        Args:
            property_name (str): The name of the property to check

        Returns:
            DtbFmt: The format type if a known type is found, otherwise None.
        """
        try:
            return dtb_known_types['exact'][property_name]
        except KeyError:
            pass

        for suffix, ftype in dtb_known_types['suffixes'].items():
            if property_name.endswith( suffix ):
                return ftype

        for prefix, ftype in dtb_known_types['prefixes'].items():
            if property_name.startswith( prefix ):
                return ftype

        return None

    @staticmethod
    def _decode_as( prop, ftype ):
        """decode 'prop' as 'ftype', None if the bytes don't fit the type"""
        plen = len( prop )
        if ftype == DtbFmt.EMPTY:
            return DtbValue( DtbFmt.EMPTY, None ) if plen == 0 else None

        if ftype == DtbFmt.PHANDLE:
            if plen == 4:
                return DtbValue( DtbFmt.PHANDLE, struct.unpack( ">I", prop )[0] )
            return None

        if ftype == DtbFmt.UINT32:
            if plen == 0 or plen % 4:
                return None
            cells = dtb_base.property_cells( prop )
            return DtbValue( DtbFmt.UINT32, cells[0] if len(cells) == 1 else cells )

        if ftype == DtbFmt.UINT64:
            if plen == 8:
                return DtbValue( DtbFmt.UINT64, struct.unpack( ">Q", prop )[0] )
            return None

        if ftype in (DtbFmt.STRING, DtbFmt.MULTI_STRING):
            runs = dtb_base.string_runs( prop )
            if runs is None:
                return None
            if ftype == DtbFmt.STRING:
                return DtbValue( DtbFmt.STRING, runs[0] ) if len(runs) == 1 else None
            return DtbValue( DtbFmt.MULTI_STRING, runs )

        return DtbValue( DtbFmt.BYTES, bytes( prop ) )

    @staticmethod
    def property_type_guess( name, prop, known_types = False ):
        """utility routine to guess the type of a property

        The guess, first match wins:

          - an empty value is EMPTY
          - (known_types only) the well known table entry for the name,
            if the bytes can be read as that type
          - 4 bytes on a phandle carrying property is PHANDLE
          - printable bytes with a single trailing null is a STRING. This
            is checked before the numeric widths, so b"foo\\x00" is a
            string, not a uint32
          - several printable null terminated strings is a MULTI_STRING
          - 4 bytes is UINT32, 8 bytes is UINT64
          - everything else is BYTES

        Args:
           name (string): the property name
           prop (bytes): the raw property value
           known_types (bool,optional): consult the well known type table

        Returns:
           DtbFmt: the guessed type
        """
        return dtb_base.property_value_decode( name, prop, known_types=known_types ).kind

    @staticmethod
    def property_value_decode( name, prop, ftype = None, known_types = False ):
        """Interpret a raw property value

        This never fails: a value that matches nothing (or that does not
        fit a forced 'ftype') is returned as BYTES.

        Args:
           name (string): the property name
           prop (bytes): the raw property value
           ftype (DtbFmt,optional): decode as this type rather than guessing
           known_types (bool,optional): consult the well known type table

        Returns:
           DtbValue: the (kind, value) pair
        """
        if ftype is not None:
            decoded = dtb_base._decode_as( prop, ftype )
            if decoded is None:
                decoded = DtbValue( DtbFmt.BYTES, bytes( prop ) )
            return decoded

        plen = len( prop )
        if plen == 0:
            return DtbValue( DtbFmt.EMPTY, None )

        if known_types:
            hint = dtb_base.property_get_known_type( name )
            if hint is not None:
                decoded = dtb_base._decode_as( prop, hint )
                if decoded is not None:
                    return decoded

        if plen == 4 and name in dtb_base.phandle_possible_properties():
            return DtbValue( DtbFmt.PHANDLE, struct.unpack( ">I", prop )[0] )

        runs = dtb_base.string_runs( prop )
        if runs is not None:
            if len( runs ) == 1:
                return DtbValue( DtbFmt.STRING, runs[0] )
            return DtbValue( DtbFmt.MULTI_STRING, runs )

        if plen == 4:
            return DtbValue( DtbFmt.UINT32, struct.unpack( ">I", prop )[0] )

        if plen == 8:
            return DtbValue( DtbFmt.UINT64, struct.unpack( ">Q", prop )[0] )

        return DtbValue( DtbFmt.BYTES, bytes( prop ) )

