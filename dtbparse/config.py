#/*
# * Copyright (c) 2019,2020 Xilinx Inc. All rights reserved.
# *
# * Author:
# *       Bruce Ashfield <bruce.ashfield@xilinx.com>
# *
# * SPDX-License-Identifier: BSD-3-Clause
# */

import configparser
from pathlib import Path

DUPLICATE_POLICIES = ( "first", "last", "error" )

default_config_file = Path(__file__).parent / "dtbparse.ini"

class DtbOptions:
    """Options that control how a blob is turned into a tree

    Attributes:
       - zero_copy: property values are memoryviews into the input blob
                    (True), or bytes owned by the tree (False)
       - duplicate_props: "first", "last" or "error", the handling of a
                          property name repeated within one node
       - known_types: consult the well known property table before
                      sniffing a value
       - strict_version: only accept version 17 blobs
    """
    def __init__( self, zero_copy = True, duplicate_props = "error",
                  known_types = False, strict_version = False ):
        if duplicate_props not in DUPLICATE_POLICIES:
            raise ValueError( f"invalid duplicate property policy: {duplicate_props}" )

        self.zero_copy = zero_copy
        self.duplicate_props = duplicate_props
        self.known_types = known_types
        self.strict_version = strict_version

    def __repr__( self ):
        return ( f"DtbOptions(zero_copy={self.zero_copy}, "
                 f"duplicate_props={self.duplicate_props!r}, "
                 f"known_types={self.known_types}, "
                 f"strict_version={self.strict_version})" )

    @staticmethod
    def from_config( config, section = "parser" ):
        """Create options from a configparser object

        Missing options (or a missing section) keep their defaults.

        Args:
           config (ConfigParser): the loaded configuration
           section (string,optional): the section holding parser options

        Returns:
           DtbOptions: the options
        """
        options = DtbOptions()
        if not config.has_section( section ):
            return options

        s = config[section]
        options.zero_copy = s.getboolean( "zero_copy", fallback=options.zero_copy )
        options.known_types = s.getboolean( "known_types", fallback=options.known_types )
        options.strict_version = s.getboolean( "strict_version", fallback=options.strict_version )

        policy = s.get( "duplicate_props", fallback=options.duplicate_props ).strip().lower()
        if policy not in DUPLICATE_POLICIES:
            raise ValueError( f"invalid duplicate property policy: {policy}" )
        options.duplicate_props = policy

        return options


def config_apply_values( config, config_vals ):
    """Apply command line overrides to a configuration

    Each value is of the form <section>.<option>=<value>. An option with
    no "=<value>" is set to "true".

    Args:
       config (ConfigParser): configuration to update
       config_vals (list): override strings

    Returns:
       ConfigParser: the updated configuration
    """
    for k in config_vals:
        config_sections = k.split( '.' )
        if len(config_sections) < 2:
            raise ValueError( f"configuration value {k} has no section" )

        config_option = config_sections[-1]
        config_option_name = config_option.split('=')[0]
        config_option_val = config_option.split('=')[-1]
        if config_option_name == config_option_val:
            config_option_val = True

        for item in config_sections[:-1]:
            if not config.has_section( item ):
                config[item] = {}

            config[item][config_option_name] = str(config_option_val)

    return config


def load( config_file = None, config_vals = None ):
    """Load parser options from a configuration file

    Args:
       config_file (string,optional): path to an ini file, the packaged
                                      default is used if not passed
       config_vals (list,optional): overrides, see config_apply_values()

    Returns:
       DtbOptions: the loaded options
    """
    if not config_file:
        config_file = default_config_file

    inf = Path(config_file)
    if not inf.exists():
        raise FileNotFoundError( f"config file {config_file} does not exist" )

    config = configparser.ConfigParser()
    config.read( inf.absolute() )

    if config_vals:
        config_apply_values( config, config_vals )

    return DtbOptions.from_config( config )
