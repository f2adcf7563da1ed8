#/*
# * Copyright (c) 2019,2020 Xilinx Inc. All rights reserved.
# *
# * Author:
# *       Bruce Ashfield <bruce.ashfield@xilinx.com>
# *
# * SPDX-License-Identifier: BSD-3-Clause
# */

import getopt
import sys
from pathlib import Path

import humanfriendly

import dtbparse
import dtbparse.config
import dtbparse.log
from dtbparse.errors import FdtError

def usage():
    prog = "dtbparse"
    print(f'Usage: {prog} [OPTION] <device tree blob>')
    print('  -v, --verbose       enable verbose/debug processing (specify more than once for more verbosity)')
    print('  -d, --dump          print the tree as dts source' )
    print('    , --header        print the blob header fields' )
    print('  -r, --reservations  list the memory reservation entries' )
    print('  -p, --phandles      list the phandles and the nodes they refer to' )
    print('  -n, --node          print the properties of a node (by path)' )
    print('    , --owned         copy property values into the tree (same as --cfgval parser.zero_copy=false)' )
    print('    , --cfgfile       specify a dtbparse configuration file to use (configparser format) ' )
    print('    , --cfgval        specify a configuration value to use (in configparser section format). Can be specified multiple times' )
    print('  -h, --help          display this help and exit')
    print('    , --version       output the version and exit')
    print('')

def print_header( tree ):
    for field, value in tree.header.items():
        print( f"{field:<20} {value:#x} ({value})" )

def print_reservations( tree ):
    if not tree.reservations:
        print( "no memory reservations" )
    for r in tree.reservations:
        print( f"{r.address:#018x} {r.size:#018x} ({humanfriendly.format_size( r.size, binary=True )})" )

def print_phandles( tree ):
    for phandle, index in sorted( tree.phandles().items() ):
        print( f"{phandle:#x}: {tree[index].abs_path}" )

def print_node( tree, path ):
    node = tree.node( path )
    if node is None:
        print( f"[ERROR]: node {path} not found" )
        sys.exit(1)

    for p in node:
        val = p.interpret()
        print( f"{p.name:<24} {val.kind.name:<12} {val.value!r}" )

    for c in node.subnodes():
        print( f"{c.name}/" )

def main( argv = None ):
    if argv is None:
        argv = sys.argv[1:]

    verbose = 0
    dump = False
    header = False
    reservations = False
    phandles = False
    node_paths = []
    owned = False
    config_file = None
    config_vals = []

    try:
        opts, args = getopt.getopt( argv, "vdrpn:h",
                                    [ "verbose", "dump", "header", "reservations", "phandles",
                                      "node=", "owned", "cfgfile=", "cfgval=", "help", "version" ] )
    except getopt.GetoptError as err:
        print(f'{str(err)}')
        usage()
        sys.exit(2)

    if opts == [] and args == []:
        usage()
        sys.exit(1)

    for o, a in opts:
        if o in ('-v', "--verbose"):
            verbose = verbose + 1
        elif o in ('-d', "--dump"):
            dump = True
        elif o in ("--header",):
            header = True
        elif o in ('-r', "--reservations"):
            reservations = True
        elif o in ('-p', "--phandles"):
            phandles = True
        elif o in ('-n', "--node"):
            node_paths.append( a )
        elif o in ("--owned",):
            owned = True
        elif o in ("--cfgfile",):
            config_file = a
        elif o in ("--cfgval",):
            config_vals.append( a )
        elif o in ('-h', '--help'):
            usage()
            sys.exit(0)
        elif o in ("--version",):
            print( f"{dtbparse.__version__}" )
            sys.exit(0)
        else:
            assert False, "unhandled option"

    if len( args ) != 1:
        print( "[ERROR]: exactly one device tree blob must be supplied\n" )
        usage()
        sys.exit(1)

    dtb = Path( args[0] )
    if not dtb.exists():
        print( f"[ERROR]: device tree blob {dtb} does not exist" )
        sys.exit(1)

    logger = dtbparse.log._init( "dtbparse" )
    dtbparse.log.init( verbose )

    if owned:
        config_vals.append( "parser.zero_copy=false" )

    try:
        options = dtbparse.config.load( config_file, config_vals )
    except (FileNotFoundError, ValueError) as e:
        print( f"[ERROR]: {e}" )
        sys.exit(1)

    try:
        tree = dtbparse.parse_file( dtb, options, logger )
    except FdtError as e:
        print( f"[ERROR]: unable to parse {dtb}: {e}" )
        sys.exit(1)

    if verbose:
        print( f"[INFO]: {dtb}: {len(tree)} nodes, {len(tree.props)} properties, "
               f"{len(tree.reservations)} reservations" )

    if header:
        print_header( tree )
    if reservations:
        print_reservations( tree )
    if phandles:
        print_phandles( tree )
    for path in node_paths:
        print_node( tree, path )

    if dump or not (header or reservations or phandles or node_paths):
        tree.print()

    return 0


if __name__ == "__main__":
    main()
