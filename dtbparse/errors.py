#/*
# * Copyright (c) 2019,2020 Xilinx Inc. All rights reserved.
# *
# * Author:
# *       Bruce Ashfield <bruce.ashfield@xilinx.com>
# *
# * SPDX-License-Identifier: BSD-3-Clause
# */

class FdtError(Exception):
    """Base class for all errors raised while decoding a device tree blob

    A malformed blob is always a hard failure: the first error found aborts
    the parse and no partial tree is returned.

    Attributes:
       - message: human readable description of the failure
       - offset: absolute byte offset into the blob where the problem was
                 found, or None if it is not tied to a location
    """
    def __init__( self, message = "", offset = None ):
        self.message = message
        self.offset = offset
        super().__init__( message )

    @property
    def kind( self ):
        """the taxonomy name of the error (i.e. "BadMagic")"""
        return type(self).__name__

    def __str__( self ):
        if self.offset is not None:
            return f"{self.kind}: {self.message} (offset {self.offset:#x})"
        return f"{self.kind}: {self.message}"


class BadMagic(FdtError):
    pass

class UnsupportedVersion(FdtError):
    pass

class Truncated(FdtError):
    pass

class UnexpectedEnd(FdtError):
    pass

class OffsetOutOfRange(FdtError):
    pass

class UnterminatedString(FdtError):
    pass

class UnknownToken(FdtError):
    pass

class UnexpectedToken(FdtError):
    pass

class PropertyOutsideNode(FdtError):
    pass

class UnbalancedNodes(FdtError):
    pass

class MissingRoot(FdtError):
    pass

class DuplicatePhandle(FdtError):
    pass

class DuplicateProperty(FdtError):
    pass

class DuplicateNode(FdtError):
    pass
