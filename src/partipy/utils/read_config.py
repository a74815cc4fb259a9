"""Reader for participant configuration files.

The participant configuration tells a :class:`~partipy.coupling.session.CouplingSession`
which interface meshes it owns and which quantities it writes and reads on each of
them. It complements the configuration of the coupling peer itself (e.g. a preCICE
xml file), which is passed on unchanged as ``config_source``.

The file is a json file of the form

    {
        "participant": "SolidEnergy",
        "config_source": "precice-config.xml",
        "meshes": {
            "SolidEnergyMesh": {
                "write_data": ["Temperature"],
                "read_data": ["Heat-Flux"]
            }
        }
    }

Only ``participant`` is mandatory. The returned dictionary can be passed as ``params``
to the coupling session.

"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Union

import partipy as pa

__all__ = ["read"]


def read(path: Union[str, Path]) -> dict:
    """Read a participant configuration file.

    Parameters:
        path: Path to the json file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If mandatory keys are missing, or if a quantity is declared both
            for writing and reading on the same mesh.

    Returns:
        Dictionary with keys ``participant``, ``config_source`` and ``meshes``.

    """
    path = Path(path)
    with open(path, "r") as f:
        raw = json.load(f)

    if "participant" not in raw:
        raise ValueError(f"No participant name given in configuration file {path}.")

    meshes: dict[str, dict[str, list[str]]] = {}
    for mesh_name, mesh_data in raw.get("meshes", {}).items():
        write_data = list(mesh_data.get("write_data", []))
        read_data = list(mesh_data.get("read_data", []))
        both = set(write_data).intersection(read_data)
        if both:
            raise ValueError(
                f"Data {sorted(both)} on mesh {mesh_name} is declared both for "
                "writing and reading."
            )
        meshes[mesh_name] = {"write_data": write_data, "read_data": read_data}

    return {
        "participant": raw["participant"],
        "config_source": raw.get("config_source", pa.DEFAULT_CONFIG_SOURCE),
        "meshes": meshes,
    }
