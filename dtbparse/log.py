#/*
# * Copyright (c) 2023 Advanced Micro Devices, Inc. All Rights Reserved.
# *
# * Author:
# *       Bruce Ashfield <bruce.ashfield@amd.com>
# *
# * SPDX-License-Identifier: BSD-3-Clause
# */

import logging
import sys

logging.basicConfig( format='[%(levelname)s]: %(message)s' )
root_logger = logging.getLogger()

def init( verbose ):
    """Set every dtbparse logger (and the root logger) to a level based on
    a verbosity count

    0 shows WARNING and above, 1 shows INFO and 2 or more shows DEBUG.

    Args:
       verbose (int): verbosity count (typically the number of -v options)

    Returns:
       Nothing
    """
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    loggers = logging.root.manager.loggerDict.items()
    for lname,logger in loggers:
        if type(logger) == logging.Logger and lname.startswith( "dtbparse" ):
            logger.setLevel( level )

    logging.getLogger( "dtbparse" ).setLevel( level )
    root_logger.setLevel( level )

def _init( name ):
    """
    Initalize a logger for a given name.

    This is typically called with __name__ to intialize a logger
    for a given file (subsystem).

    When called, a formatter is setup that includes the passed name
    and then the standard level and messages. Calling it more than once
    for the same name does not stack handlers.

    Args:
       name (string): the logger name

    Returns:
       Logger: the configured logger
    """
    l = logging.getLogger( name )
    if not l.handlers:
        formatter = logging.Formatter('[%(name)s][%(levelname)s]: %(message)s' )
        ch = logging.StreamHandler()
        ch.setFormatter( formatter )
        l.addHandler( ch )
        l.propagate = False

    return l

def _level( level, name = None ):
    """
    Set the logging level of a named logger

    If no name is passed, the root logger is used

    Args:
        level (logging.<level>): the level set
        name (string,optonal): the name of the logger, "root" if not passed

    Returns:
        Nothing
    """
    if name:
        logger = logging.getLogger(name)
    else:
        logger = root_logger

    logger.setLevel( level=level )

def _warning( message, logger = None ):
    """
    output a warning mesage

    Args:
        message (string): the string to output
        logger (Logger,optional): the logger to use, the root logger if not passed

    Returns:
        None
    """
    if not logger:
        logger = root_logger
    logger.warning( message )

def _info( message, output_if_true = True, logger = None ):
    """
    output an info mesage

    Args:
        message (string): the string to output
        output_if_true (bool,optonal): flag indicating if the message should be output
        logger (Logger,optional): the logger to use, the root logger if not passed

    Returns:
        None
    """
    if not logger:
        logger = root_logger

    if output_if_true:
        logger.info( message )

def _error( message, also_exit = False, logger = None ):
    """
    output an error mesage

    The parsing core calls this right before raising, so it never exits.
    Front ends can pass also_exit to stop after reporting.

    Args:
        message (string): the string to output
        also_exit (bool,optonal): flag indicating if exit should be called after the message
        logger (Logger,optional): the logger to use, the root logger if not passed

    Returns:
        None
    """
    if not logger:
        logger = root_logger

    logger.error( message )

    if also_exit:
        sys.exit(1)

def _debug( message, logger = None ):
    """
    output a debug mesage

    Args:
        message (string): the string to output
        logger (Logger,optional): the logger to use, the root logger if not passed

    Returns:
        None
    """
    if not logger:
        logger = root_logger

    logger.debug( message )
