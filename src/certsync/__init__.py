"""certsync -- keeps a TLS key/certificate pair in sync from a remote issuer.

The agent pulls (or receives by encrypted push) a key and certificate,
serves it live over HTTPS, writes it to disk inside an administrator
defined maintenance window and restarts dependent containers.
"""

__version__ = "0.1.0"
