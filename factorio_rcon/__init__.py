"""factorio_rcon: RCON control for a Factorio dedicated server.

This package speaks the Source-style RCON protocol to a running Factorio
server, normalises command output into result records, and swaps the save a
server is running by restarting the process (RCON has no live "switch world"
command).

Architecture:
    factorio-rcon (console)  /  factorio-rcon-mcp (MCP stdio tools)
                         |
                         v
                  CommandExecutor  <---  SaveSwapOrchestrator
                         |                    |        |
                         v                    v        v
                   RconConnection        SaveStore  ServerProcess
                         |
                         | TCP, little-endian length-prefixed packets
                         v
                  Factorio --rcon-port
"""

__version__ = "0.1.0"
