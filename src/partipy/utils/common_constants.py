"""
The module is intended to give access to a set of unified keywords, units etc.

To access the quantities, invoke pa.KEY.

"""

""" Global keywords

Define unified keywords used throughout the software.
"""
# Names of the scalar quantities exchanged at a conjugate heat transfer interface
TEMPERATURE = "Temperature"
HEAT_FLUX = "Heat-Flux"

# Names of the scalar quantities exchanged at a free-flow / porous-medium interface
PRESSURE = "Pressure"
VELOCITY = "Velocity"

# Direction of a field buffer, seen from the participant owning it
WRITE = "write"
READ = "read"

# Default name of the coupling configuration handed to the peer
DEFAULT_CONFIG_SOURCE = "precice-config.xml"

""" Units """
# Time and length, in SI base units
SECOND = 1.0
METER = 1.0


def CELSIUS_to_KELVIN(celsius):
    return celsius + 273.15
