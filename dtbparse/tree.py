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
import sys

import humanfriendly

from dtbparse.base import dtb_base
from dtbparse.config import DtbOptions
from dtbparse.errors import PropertyOutsideNode, UnbalancedNodes, MissingRoot
from dtbparse.errors import UnexpectedToken, DuplicatePhandle, DuplicateProperty, DuplicateNode
from dtbparse.fdt import FdtTokenKind
from dtbparse.fmt import DtbFmt
from dtbparse.log import _debug, _warning, _error

# #address-cells / #size-cells when a node does not set them
DEFAULT_ADDRESS_CELLS = 2
DEFAULT_SIZE_CELLS = 1

PHANDLE_PROPERTIES = ( "phandle", "linux,phandle" )

logger = logging.getLogger( __name__ )

class DtbProp():
    """Class representing a device tree property

    Properties are records in the tree's property arena. The value is kept
    raw, interpretation happens on request via interpret().

    Attributes:
       - number: index of the property in the tree's property arena
       - name: the property name (resolved from the strings block)
       - name_offset: offset of the name in the strings block
       - value: the raw value, a memoryview into the blob (zero copy)
                or bytes owned by the tree
       - node: index of the owning node
       - offset: absolute blob offset of the FDT_PROP token
       - tree: the containing tree
    """
    def __init__(self, name, number = -1, node = -1, value = b"", name_offset = -1,
                 offset = -1, tree = None ):
        self.name = name
        self.number = number
        self.node = node
        self.value = value
        self.name_offset = name_offset
        self.offset = offset
        self.tree = tree

    def __repr__( self ):
        return f"DtbProp({self.name!r}, len={len(self.value)}, node={self.node})"

    def __str__( self ):
        """The dts representation of the property: <name> = <value>;"""
        return DtbTreePrinter.property_string( self )

    def __len__( self ):
        return len( self.value )

    def __eq__( self, other ):
        if not isinstance( other, DtbProp ):
            return NotImplemented
        return self.name == other.name and bytes( self.value ) == bytes( other.value )

    def __hash__( self ):
        return hash( (self.name, bytes( self.value )) )

    @property
    def owner( self ):
        """the DtbNode holding this property"""
        return self.tree.__nodes__[self.node]

    def interpret( self, ftype = None ):
        """Interpret the raw value

        Args:
           ftype (DtbFmt,optional): decode as this type instead of guessing

        Returns:
           DtbValue: (kind, value). Unknown or ill fitting data is BYTES.
        """
        known_types = False
        if self.tree is not None:
            known_types = self.tree.options.known_types

        return dtb_base.property_value_decode( self.name, self.value, ftype, known_types )

    def cells( self ):
        """the value as a list of big endian uint32 cells"""
        return dtb_base.property_cells( self.value )


class DtbNode(object):
    """Class representing a device tree node

    Nodes are records in the tree's node arena. Relationships are arena
    indices: 'parent' is an index (None for the root), 'children' and
    'props' are lists of indices in document order.

    Attributes:
       - number: index of the node in the tree's node arena
       - name: the node name ("" for the root)
       - parent: parent node index, or None
       - children: child node indices
       - props: property indices
       - phandle: the node's phandle, or None if it has none
       - depth: 0 for the root
       - abs_path: absolute path of the node ("/" for the root)
       - offset: absolute blob offset of the FDT_BEGIN_NODE token
       - tree: the containing tree
    """
    def __init__(self, number = -1, name = "", parent = None, depth = 0, abs_path = "",
                 offset = -1, tree = None ):
        self.number = number
        self.name = name
        self.parent = parent
        self.children = []
        self.props = []
        self.phandle = None
        self.depth = depth
        self.abs_path = abs_path
        self.offset = offset
        self.tree = tree

        self.__propnames__ = {}
        self.__childnames__ = {}

    def __repr__( self ):
        return f"DtbNode({self.abs_path!r}, number={self.number})"

    def __str__( self ):
        return self.abs_path

    def __int__( self ):
        return self.number

    def __iter__( self ):
        """iterate the node's properties"""
        return iter( self.properties() )

    def __contains__( self, prop_name ):
        return prop_name in self.__propnames__

    def __getitem__( self, prop_name ):
        """Access a property by name

        Raises:
           KeyError: if the node has no such property
        """
        return self.tree.__props__[self.__propnames__[prop_name]]

    @property
    def unit_name( self ):
        """the name without the unit address ("cpu" for "cpu@0")"""
        return self.name.split( "@" )[0]

    @property
    def unit_address( self ):
        """the unit address part of the name ("0" for "cpu@0"), or "" """
        parts = self.name.split( "@", 1 )
        return parts[1] if len(parts) > 1 else ""

    def properties( self ):
        """the node's DtbProp records, in document order"""
        return [ self.tree.__props__[p] for p in self.props ]

    def subnodes( self ):
        """the node's direct children as DtbNode records"""
        return [ self.tree.__nodes__[c] for c in self.children ]

    def parent_node( self ):
        """the parent DtbNode, None for the root"""
        if self.parent is None:
            return None
        return self.tree.__nodes__[self.parent]

    def child( self, name ):
        """the direct child called 'name', or None"""
        try:
            return self.tree.__nodes__[self.__childnames__[name]]
        except KeyError:
            return None

    def propval( self, pname, ftype = None ):
        """Interpret a property of this node

        Args:
           pname (string): the property name
           ftype (DtbFmt,optional): decode as this type instead of guessing

        Returns:
           DtbValue, or None if the property does not exist
        """
        try:
            prop = self[pname]
        except KeyError:
            return None

        return prop.interpret( ftype )

    def _cells( self, pname, default ):
        val = self.propval( pname, DtbFmt.UINT32 )
        if val is None or val.kind != DtbFmt.UINT32 or isinstance( val.value, list ):
            return default
        return val.value

    @property
    def address_cells( self ):
        """#address-cells for this node's children"""
        return self._cells( "#address-cells", DEFAULT_ADDRESS_CELLS )

    @property
    def size_cells( self ):
        """#size-cells for this node's children"""
        return self._cells( "#size-cells", DEFAULT_SIZE_CELLS )

    def reg( self ):
        """Decode the 'reg' property

        The parent's #address-cells and #size-cells give the size of each
        field.

        Returns:
           list: (address, size) tuples. Empty if there is no reg, or if
                 its length is not a multiple of the entry size.
        """
        if "reg" not in self:
            return []

        parent = self.parent_node()
        if parent is None:
            acells, scells = DEFAULT_ADDRESS_CELLS, DEFAULT_SIZE_CELLS
        else:
            acells, scells = parent.address_cells, parent.size_cells

        cells = self["reg"].cells()
        entry = acells + scells
        if not entry or len( self["reg"] ) % 4 or len( cells ) % entry:
            return []

        def combine( fields ):
            val = 0
            for f in fields:
                val = (val << 32) | f
            return val

        regs = []
        for i in range( 0, len( cells ), entry ):
            regs.append( ( combine( cells[i:i + acells] ),
                           combine( cells[i + acells:i + entry] ) ) )

        return regs


class DtbTree:
    """The parsed device tree

    The tree is a pair of arenas: every DtbNode and DtbProp lives in a flat
    list and is referred to by its index. Indices are stable for the life
    of the tree. Node order is document (depth first) order, so the root
    is always node 0.

    Trees are built by DtbTreeBuilder and are not modified afterwards.

    Attributes:
       - __nodes__: the node arena
       - __props__: the property arena
       - __pnodes__: phandle -> node index map, see build_phandle_index()
       - __paths__: absolute path -> node index map
       - options: the DtbOptions used for the parse
       - header: the FdtHeader of the source blob (if parsed from one)
       - reservations: the memory reservation entries (if parsed from a blob)
    """
    def __init__( self, options = None ):
        self.__nodes__ = []
        self.__props__ = []
        self.__pnodes__ = {}
        self.__paths__ = {}

        self.options = options if options is not None else DtbOptions()
        self.header = None
        self.reservations = []

    def __len__( self ):
        return len( self.__nodes__ )

    def __iter__( self ):
        """iterate all nodes in document order"""
        return iter( self.__nodes__ )

    def __getitem__( self, key ):
        """Access a node by arena index (int) or absolute path (string)

        Raises:
           KeyError / IndexError: if no such node exists
        """
        if isinstance( key, int ):
            return self.__nodes__[key]

        return self.__nodes__[self.__paths__[key]]

    @property
    def root( self ):
        """the root DtbNode"""
        return self.__nodes__[0]

    @property
    def nodes( self ):
        return self.__nodes__

    @property
    def props( self ):
        return self.__props__

    def node( self, path ):
        """the node at 'path', or None"""
        try:
            return self[path]
        except KeyError:
            return None

    def children( self, index ):
        """the child nodes of the node at arena 'index'"""
        return self.__nodes__[index].subnodes()

    def properties( self, index ):
        """the properties of the node at arena 'index'"""
        return self.__nodes__[index].properties()

    def prop( self, index ):
        """the DtbProp at property arena 'index'"""
        return self.__props__[index]

    def propval( self, node, pname, ftype = None ):
        """Interpret a property of a node

        Args:
           node (DtbNode, int or string): the node, its index or its path
           pname (string): the property name
           ftype (DtbFmt,optional): decode as this type instead of guessing

        Returns:
           DtbValue, or None if the property does not exist
        """
        if not isinstance( node, DtbNode ):
            node = self[node]

        return node.propval( pname, ftype )

    def phandles( self ):
        """a copy of the phandle -> node index map"""
        return dict( self.__pnodes__ )

    def pnode( self, phandle ):
        """Find a node by phandle

        Returns:
           DtbNode: the matching node if found, None otherwise
        """
        try:
            return self.__nodes__[self.__pnodes__[phandle]]
        except KeyError:
            return None

    def build_phandle_index( self, logger = logger ):
        """(Re)build the phandle -> node index map

        Every 'phandle' and 'linux,phandle' property is read as a 4 byte
        big endian id. The map is derived data, it is only used for
        reference lookups and can be rebuilt at any time.

        Raises:
           DuplicatePhandle: if two different nodes claim the same id
        """
        pnodes = {}
        for node in self.__nodes__:
            node.phandle = None

        for prop in self.__props__:
            if prop.name not in PHANDLE_PROPERTIES:
                continue

            node = self.__nodes__[prop.node]
            if len( prop ) != 4:
                _warning( f"{node.abs_path}: {prop.name} is {len(prop)} bytes, not indexed", logger=logger )
                continue

            phandle = struct.unpack( ">I", prop.value )[0]
            if phandle in pnodes and pnodes[phandle] != node.number:
                other = self.__nodes__[pnodes[phandle]]
                _error( f"phandle {phandle:#x} is used by {other.abs_path} and {node.abs_path}",
                        logger=logger )
                raise DuplicatePhandle( f"phandle {phandle:#x} is used by both {other.abs_path} and {node.abs_path}",
                                        prop.offset if prop.offset >= 0 else None )

            pnodes[phandle] = node.number
            if node.phandle is None:
                node.phandle = phandle

            _debug( f"phandle {phandle:#x} -> {node.abs_path}", logger=logger )

        self.__pnodes__ = pnodes
        return pnodes

    def interrupt_parent( self, node ):
        """Resolve the interrupt parent of a node

        'interrupt-parent' is inherited, so if the node does not carry one
        its ancestors are checked.

        Args:
           node (DtbNode, int or string): the node, its index or its path

        Returns:
           DtbNode: the interrupt parent, None if there is none or the
                    phandle is not in the tree
        """
        if not isinstance( node, DtbNode ):
            node = self[node]

        while node is not None:
            if "interrupt-parent" in node:
                val = node.propval( "interrupt-parent", DtbFmt.PHANDLE )
                if val.kind != DtbFmt.PHANDLE:
                    return None
                return self.pnode( val.value )
            node = node.parent_node()

        return None

    def has_cpus( self ):
        """True if the tree has a /cpus node"""
        return self.node( "/cpus" ) is not None

    def num_cpus( self ):
        """the number of children of /cpus, 0 if there is no /cpus node"""
        cpus = self.node( "/cpus" )
        if cpus is None:
            return 0

        return len( [ c for c in cpus.subnodes() if c.unit_name == "cpu" ] )

    def print( self, output = None ):
        """print the tree as dts to 'output' (stdout by default)"""
        printer = DtbTreePrinter( output if output is not None else sys.stdout )
        printer.exec( self )


class DtbTreeBuilder:
    """Build a DtbTree from a structure block token stream

    The builder keeps a stack of open node indices. Tokens are passed in
    with feed(), or a whole stream is consumed with build().

    Attributes:
       - tree: the tree being built
       - strings: the FdtStrings used to resolve property names
       - stack: indices of the currently open nodes
    """
    def __init__( self, strings, options = None, logger = logger ):
        self.tree = DtbTree( options )
        self.strings = strings
        self.logger = logger
        self.stack = []
        self.ended = False

    def build( self, tokens ):
        """Consume 'tokens' and return the finished tree

        Raises:
           any error from the token stream or feed(). An incomplete
           stream (no FDT_END) fails as UnbalancedNodes or MissingRoot.
        """
        for token in tokens:
            self.feed( token )

        if not self.ended:
            if self.stack:
                _error( "token stream ended with open nodes", logger=self.logger )
                raise UnbalancedNodes( f"{len(self.stack)} nodes still open at the end of the stream" )
            if not self.tree.__nodes__:
                _error( "token stream has no nodes", logger=self.logger )
                raise MissingRoot( "no nodes in the token stream" )
            _error( "token stream ended without FDT_END", logger=self.logger )
            raise UnexpectedToken( "token stream ended without FDT_END" )

        self.tree.build_phandle_index( self.logger )
        return self.tree

    def feed( self, token ):
        """Apply one token to the tree under construction"""
        if self.ended:
            _error( f"{token.kind.name} after FDT_END", logger=self.logger )
            raise UnexpectedToken( f"{token.kind.name} after FDT_END", token.offset )

        if token.kind == FdtTokenKind.BEGIN_NODE:
            self.begin_node( token.name, token.offset )
        elif token.kind == FdtTokenKind.PROP:
            self.add_prop( token.name_offset, token.value, token.offset )
        elif token.kind == FdtTokenKind.END_NODE:
            self.end_node( token.offset )
        elif token.kind == FdtTokenKind.END:
            self.end( token.offset )

    def begin_node( self, name, offset = -1 ):
        tree = self.tree
        if not self.stack:
            if tree.__nodes__:
                _error( f"second root node '{name}'", logger=self.logger )
                raise UnexpectedToken( f"node '{name}' opened after the root was closed", offset )

            parent = None
            # some old blobs name the root "/"
            if name == "/":
                name = ""
            abs_path = "/"
        else:
            parent = tree.__nodes__[self.stack[-1]]
            if name in parent.__childnames__:
                _error( f"{parent.abs_path} has two children named '{name}'", logger=self.logger )
                raise DuplicateNode( f"{parent.abs_path} already has a child named '{name}'", offset )
            abs_path = parent.abs_path.rstrip( "/" ) + "/" + name

        node = DtbNode( len( tree.__nodes__ ), name, None if parent is None else parent.number,
                        len( self.stack ), abs_path, offset, tree )
        tree.__nodes__.append( node )
        tree.__paths__[abs_path] = node.number
        if parent is not None:
            parent.children.append( node.number )
            parent.__childnames__[name] = node.number

        self.stack.append( node.number )
        _debug( f"opened node {abs_path}", logger=self.logger )

        return node

    def add_prop( self, name_offset, value, offset = -1 ):
        tree = self.tree
        if not self.stack:
            _error( "property outside of any node", logger=self.logger )
            raise PropertyOutsideNode( f"property (name offset {name_offset:#x}) outside of any node", offset )

        name = self.strings.resolve( name_offset )
        node = tree.__nodes__[self.stack[-1]]

        if not tree.options.zero_copy:
            value = bytes( value )

        if name in node.__propnames__:
            policy = tree.options.duplicate_props
            if policy == "error":
                _error( f"{node.abs_path}: duplicate property {name}", logger=self.logger )
                raise DuplicateProperty( f"{node.abs_path} already has a property named '{name}'", offset )

            existing = tree.__props__[node.__propnames__[name]]
            _warning( f"{node.abs_path}: duplicate property {name}, keeping the {policy} one",
                      logger=self.logger )
            if policy == "last":
                existing.value = value
                existing.name_offset = name_offset
                existing.offset = offset
            return existing

        prop = DtbProp( name, len( tree.__props__ ), node.number, value, name_offset, offset, tree )
        tree.__props__.append( prop )
        node.props.append( prop.number )
        node.__propnames__[name] = prop.number

        _debug( f"{node.abs_path}: property {name} ({len(value)} bytes)", logger=self.logger )

        return prop

    def end_node( self, offset = -1 ):
        if not self.stack:
            _error( "FDT_END_NODE without an open node", logger=self.logger )
            raise UnbalancedNodes( "FDT_END_NODE without an open node", offset )

        node = self.tree.__nodes__[self.stack.pop()]
        _debug( f"closed node {node.abs_path}", logger=self.logger )

    def end( self, offset = -1 ):
        if self.stack:
            open_node = self.tree.__nodes__[self.stack[-1]]
            _error( f"FDT_END with {open_node.abs_path} still open", logger=self.logger )
            raise UnbalancedNodes( f"FDT_END with {len(self.stack)} nodes still open", offset )

        if not self.tree.__nodes__:
            _error( "FDT_END without a root node", logger=self.logger )
            raise MissingRoot( "structure block has no root node", offset )

        self.ended = True


class DtbTreePrinter:
    """Print a tree in dts format

    The printer only uses the tree's read interface. Walking the tree
    calls start(), start_node(), start_property(), end_node() and end(),
    which subclasses can override.

    Attributes:
       - output: the file object written to
       - indent_char: the string used for one level of indentation
    """
    def __init__( self, output = sys.stdout, indent_char = "\t" ):
        self.output = output
        self.indent_char = indent_char

    @staticmethod
    def _escape( s ):
        s = s.replace( "\\", "\\\\" ).replace( '"', '\\"' )
        s = s.replace( "\n", "\\n" ).replace( "\t", "\\t" ).replace( "\r", "\\r" )
        s = s.replace( "\v", "\\v" ).replace( "\f", "\\f" )
        return s

    @staticmethod
    def _name( s ):
        # names that are not utf-8 carry surrogate escapes, show them as \xNN
        return s.encode( "utf-8", "surrogateescape" ).decode( "utf-8", "backslashreplace" )

    @staticmethod
    def property_string( p ):
        """the dts form of a property: <name> = <value>;"""
        val = p.interpret()
        kind = val.kind
        name = DtbTreePrinter._name( p.name )

        if kind == DtbFmt.EMPTY:
            return f"{name};"

        if kind == DtbFmt.STRING:
            return f'{name} = "{DtbTreePrinter._escape( val.value )}";'

        if kind == DtbFmt.MULTI_STRING:
            strings = ", ".join( f'"{DtbTreePrinter._escape( s )}"' for s in val.value )
            return f"{name} = {strings};"

        if len( p ) % 4 == 0:
            cells = " ".join( f"{c:#x}" for c in p.cells() )
            return f"{name} = <{cells}>;"

        data = " ".join( f"{b:02x}" for b in bytes( p.value ) )
        return f"{name} = [{data}];"

    def exec( self, tree ):
        """walk 'tree' and print it"""
        self.start( tree )

        stack = []
        for node in tree:
            while stack and stack[-1].depth >= node.depth:
                self.end_node( stack.pop() )

            self.start_node( node )
            for p in node:
                self.start_property( p )
            stack.append( node )

        while stack:
            self.end_node( stack.pop() )

        self.end( tree )

    def start( self, tree ):
        print( "/dts-v1/;", file=self.output )
        if tree.reservations:
            print( "", file=self.output )
        for r in tree.reservations:
            size = humanfriendly.format_size( r.size, binary=True )
            print( f"/memreserve/ {r.address:#018x} {r.size:#018x}; // {size}", file=self.output )
        print( "", file=self.output )

    def start_node( self, n ):
        indent = self.indent_char * n.depth
        if n.parent is None:
            print( f"{indent}/ {{", file=self.output )
        else:
            print( "", file=self.output )
            print( f"{indent}{DtbTreePrinter._name( n.name )} {{", file=self.output )

    def start_property( self, p ):
        indent = self.indent_char * (p.owner.depth + 1)
        print( f"{indent}{p}", file=self.output )

    def end_node( self, n ):
        indent = self.indent_char * n.depth
        print( f"{indent}}};", file=self.output )

    def end( self, tree ):
        pass
