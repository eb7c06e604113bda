"""mctl -- manage a fleet of git repositories as a single logical unit.

Core pieces:

- ``repository`` -- registry of tracked repositories, per-repository
  operations and the derived status model.
- ``sync`` -- bounded-parallel synchronization across the fleet.
- ``snapshot`` -- fleet-wide point-in-time capture and restore.
- ``mcp`` -- MCP stdio server exposing the above as tools.
"""

__version__ = "0.4.0"
