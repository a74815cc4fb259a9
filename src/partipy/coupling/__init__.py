"""
The coupling adapter between a participating solver and the coupling peer.

Modules:
    actions: Actions the peer may require, e.g. writing a checkpoint.
    errors: Fatal errors of the coupling protocol.
    protocol: Contracts of the peer and of the participating solver.
    vertex_index_mapper: Interface meshes and the bijection between local entity ids
        and peer vertex ids.
    field_buffer: Values of a scalar quantity on an interface mesh, in peer order.
    checkpoint: Save/restore protocol of the solver state within coupling windows.
    time_window: Negotiation of step sizes with the peer.
    session: The coupling session owning all of the above.
    precice_peer: The peer protocol on top of the preCICE python bindings.
"""
