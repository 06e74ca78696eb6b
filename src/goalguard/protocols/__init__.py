"""Protocol layer — capability-issuance RPC."""
