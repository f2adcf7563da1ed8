from enum import Enum

# returned by the property value interpreter
class DtbFmt(Enum):
    """Enum class to define the value kinds a raw property can be read as
    """
    EMPTY = 1
    UINT32 = 2
    UINT64 = 3
    STRING = 4
    MULTI_STRING = 5
    PHANDLE = 6
    BYTES = 7
