#/*
# * Copyright (c) 2019,2020 Xilinx Inc. All rights reserved.
# *
# * Author:
# *       Bruce Ashfield <bruce.ashfield@xilinx.com>
# *
# * SPDX-License-Identifier: BSD-3-Clause
# */

from pathlib import Path

from dtbparse.config import DtbOptions
from dtbparse.errors import FdtError
from dtbparse.fdt import DtbBlob, FdtHeader, FdtReservation, FdtToken, FdtTokenKind
from dtbparse.fmt import DtbFmt
from dtbparse.base import DtbValue
from dtbparse.tree import DtbTree, DtbNode, DtbProp, DtbTreeBuilder, DtbTreePrinter
import dtbparse.fdt
import dtbparse.tree

dtbparse_directory = Path(__file__).parent

with open( dtbparse_directory / 'VERSION', 'r' ) as f:
    __version__ = f.read().strip()

def parse( blob, options = None, logger = None ):
    """Parse a device tree blob into a DtbTree

    The header is validated, the memory reservation block is read, the
    structure block is tokenized into the tree's arenas and the phandle
    index is built. The first problem found aborts the parse.

    Args:
       blob (bytes-like): the complete device tree blob
       options (DtbOptions,optional): parse options, defaults if not passed
       logger (Logger,optional): diagnostic sink. The dtbparse module
                                 loggers are used if not passed.

    Returns:
       DtbTree: the parsed tree

    Raises:
       FdtError: (a subclass of) if the blob is malformed
    """
    if options is None:
        options = DtbOptions()

    fdt_logger = logger if logger is not None else dtbparse.fdt.logger
    tree_logger = logger if logger is not None else dtbparse.tree.logger

    dtb = DtbBlob( blob, options.strict_version, fdt_logger )
    reservations = dtb.reservations.entries()

    builder = DtbTreeBuilder( dtb.strings, options, tree_logger )
    tree = builder.build( dtb.tokens() )

    tree.header = dtb.header
    tree.reservations = reservations

    return tree

def parse_file( path, options = None, logger = None ):
    """Read and parse the device tree blob at 'path', see parse()"""
    with open( path, 'rb' ) as f:
        blob = f.read()

    return parse( blob, options, logger )
