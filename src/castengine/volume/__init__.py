"""Block-volume control: istgt control socket, config file edits, and the RPC endpoint."""
